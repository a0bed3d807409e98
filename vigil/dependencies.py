"""Module-level singletons shared by the app lifespan and the API routes."""

from .config import VigilConfig, get_config
from .database import get_session_factory
from .settings_provider import ConfigSettingsProvider
from .utils.logging import get_logger

_dep_logger = get_logger("dependencies")

_config_instance: VigilConfig | None = None
_settings_provider = None
_file_integrity = None
_retention_manager = None
_maintenance_sweeper = None


def get_app_config() -> VigilConfig:
    """Get the application config singleton."""
    global _config_instance
    if _config_instance is None:
        _config_instance = get_config()
    return _config_instance


def get_settings_provider() -> ConfigSettingsProvider:
    global _settings_provider
    if _settings_provider is None:
        _settings_provider = ConfigSettingsProvider(get_app_config())
    return _settings_provider


def get_file_integrity():
    """Get the File Integrity module singleton, wired to the store."""
    global _file_integrity
    if _file_integrity is None:
        from .modules.file_integrity import FileIntegrity
        from .security.priority import GlobPriorityClassifier

        config = get_app_config()
        _file_integrity = FileIntegrity(config={
            "scan_root": config.scan_root,
            "scan_batch_size": config.scan_batch_size,
            "checksum_workers": config.checksum_workers,
            "secret_key": config.secret_key,
        })
        _file_integrity.set_db_session_factory(get_session_factory(config))
        _file_integrity.set_settings_provider(get_settings_provider())
        if config.priority_rules:
            _file_integrity.set_priority_classifier(GlobPriorityClassifier(config.priority_rules))
        _dep_logger.info("file_integrity_created", scan_root=config.scan_root)
    return _file_integrity


def get_retention_manager():
    global _retention_manager
    if _retention_manager is None:
        from .maintenance.retention import RetentionManager

        config = get_app_config()
        _retention_manager = RetentionManager(
            get_session_factory(config),
            get_settings_provider(),
            keep_baseline=config.retention_keep_baseline,
        )
    return _retention_manager


def get_maintenance_sweeper():
    global _maintenance_sweeper
    if _maintenance_sweeper is None:
        from .maintenance.sweeper import MaintenanceSweeper

        config = get_app_config()
        _maintenance_sweeper = MaintenanceSweeper(
            content_cache=get_file_integrity().content_cache,
            retention=get_retention_manager(),
            config={
                "cache_cleanup_interval": config.cache_cleanup_interval,
                "retention_interval": config.retention_interval,
            },
        )
    return _maintenance_sweeper


def reset_singletons() -> None:
    """Drop every cached singleton (tests and app shutdown)."""
    global _config_instance, _settings_provider, _file_integrity
    global _retention_manager, _maintenance_sweeper
    _config_instance = None
    _settings_provider = None
    _file_integrity = None
    _retention_manager = None
    _maintenance_sweeper = None
