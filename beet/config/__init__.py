"""Configuration package.

Settings are split by concern: :mod:`.app_config` holds process-wide
application settings and :mod:`.provider_config` holds the inference
provider credentials and transport timeouts.
"""

from .app_config import AppConfig, get_app_config  # noqa: F401
from .provider_config import ProviderConfig, get_provider_config  # noqa: F401
