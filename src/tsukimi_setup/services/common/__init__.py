# Tsukimi Speaker Setup - Common Utilities
#
# Shared utilities used by the setup entry points.
# Import directly from the specific module, not from this __init__.py.
#
# Example:
#   from tsukimi_setup.services.common.paths import SETUP_COMPLETE_FLAG_NAME
#   from tsukimi_setup.services.common.units import install_unit
