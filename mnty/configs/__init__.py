from .manager_config import ManagerConfig
from .config_loader import ConfigLoader, DEFAULT_CONFIG

__all__ = ['ManagerConfig', 'ConfigLoader', 'DEFAULT_CONFIG']
