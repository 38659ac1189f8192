import os


class Config:
    """Base configuration"""

    # Source device
    DEVICE_DIR = '/dev'
    TARGET_DEVICE = os.environ.get('BACKUP_TARGET_DEVICE')

    # Destination
    BACKUP_DEST = os.environ.get('BACKUP_DEST')
    ARTIFACT_PATTERN = '*.img.gz'

    # Transfer
    BLOCK_SIZE = 64 * 1024
    REQUIRED_COMMANDS = ('dd', 'date', 'gzip')

    # Free space check (device size + 10% headroom)
    CHECK_FREE_SPACE = True
    SPACE_HEADROOM_PERCENT = 10

    # Logging
    DEBUG = os.environ.get('BACKUP_DEBUG', 'false').lower() == 'true'
    LOG_DIR = os.environ.get('BACKUP_LOG_DIR')


class RpiConfig(Config):
    """Raspberry Pi system partition"""
    TARGET_DEVICE = Config.TARGET_DEVICE or 'nvme0n1p2'
    BACKUP_DEST = Config.BACKUP_DEST or '/mnt/rpi_backup'


class Dc01Config(Config):
    """Domain controller data partition"""
    TARGET_DEVICE = Config.TARGET_DEVICE or 'nvme0n1p4'
    BACKUP_DEST = Config.BACKUP_DEST or '/mnt/dc01_backup'

    # No space check on this host
    CHECK_FREE_SPACE = False


# Configuration dictionary
config = {
    'rpi': RpiConfig,
    'dc01': Dc01Config,
    'default': RpiConfig
}


def load_config(config_name=None, **overrides) -> dict:
    """
    Build a settings dict from a configuration profile.

    Args:
        config_name: Profile name (defaults to DEVBACKUP_PROFILE, then 'default')
        **overrides: Settings replacing the profile values

    Returns:
        Dict of upper-case setting names to values

    Raises:
        ValueError: If the profile is unknown
    """
    if config_name is None:
        config_name = os.environ.get('DEVBACKUP_PROFILE', 'default')

    if config_name not in config:
        raise ValueError(
            f"Unknown configuration profile: {config_name}. "
            f"Valid options: {list(config.keys())}"
        )

    profile = config[config_name]
    settings = {
        key: getattr(profile, key)
        for key in dir(profile)
        if key.isupper()
    }

    unknown = [key for key in overrides if key not in settings]
    if unknown:
        raise ValueError(f"Unknown configuration keys: {unknown}")

    settings.update(overrides)
    return settings
