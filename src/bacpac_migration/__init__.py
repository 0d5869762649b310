"""BACPAC Bridge - Import a batch of bacpac archives into Azure SQL."""

import logging
import warnings

__version__ = "0.1.0"
__author__ = "BACPAC Migration Team"
__license__ = "Apache-2.0"

# Suppress verbose third-party library logging
# The Azure SDK logs every HTTP exchange at INFO, which drowns out polling progress
logging.getLogger("azure").setLevel(logging.WARNING)
logging.getLogger("azure.core.pipeline.policies.http_logging_policy").setLevel(logging.WARNING)
logging.getLogger("azure.identity").setLevel(logging.WARNING)
logging.getLogger("urllib3").setLevel(logging.WARNING)
logging.getLogger("urllib3.connectionpool").setLevel(logging.ERROR)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("msal").setLevel(logging.WARNING)

warnings.filterwarnings("ignore", category=DeprecationWarning, module="httpx")
warnings.filterwarnings("ignore", category=DeprecationWarning, module="azure")
