"""
Offline Worker
Configuration, log records and host triggers around the offline cache
"""

from .config import WorkerConfig, load_config
from .service_worker import OfflineWorker

__all__ = ['OfflineWorker', 'WorkerConfig', 'load_config']
