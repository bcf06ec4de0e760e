"""
Configuration management for the atlas packer.
Supports TOML and JSON configuration files with environment overrides.
"""

import os
import json
from dataclasses import dataclass

# Handle tomllib import for different Python versions
try:
    import tomllib  # Python 3.11+
except ImportError:
    import tomli as tomllib  # Python < 3.11
from typing import Dict, List, Any, Optional, Union
from pathlib import Path

from .processing.atlas import AtlasConfig, BACKGROUNDS
from .processing.packing import PackingStrategy

OUTPUT_FORMATS = ['PNG', 'WEBP']
FRAME_MAP_FORMATS = ['json', 'toml']


@dataclass
class PackerConfig:
    """Main configuration class for the atlas packer."""

    # Packing settings
    padding: int = 2
    strategy: str = "maxrects"
    allow_partial: bool = False
    power_of_two: bool = False
    max_size: tuple[int, int] = (16384, 16384)

    # Trim settings
    auto_trim: bool = False
    alpha_threshold: int = 0

    # Output settings
    output_format: Optional[str] = None  # None: taken from the output extension
    compression_level: int = 6
    background: str = "transparent"
    frame_map_format: str = "json"

    @classmethod
    def from_file(cls, config_path: Union[str, Path]) -> "PackerConfig":
        """Load configuration from TOML or JSON file."""
        config_path = Path(config_path)

        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        if config_path.suffix.lower() == '.toml':
            return cls._from_toml(config_path)
        elif config_path.suffix.lower() == '.json':
            return cls._from_json(config_path)
        else:
            raise ValueError(f"Unsupported configuration format: {config_path.suffix}")

    @classmethod
    def _from_toml(cls, config_path: Path) -> "PackerConfig":
        """Load configuration from TOML file."""
        with open(config_path, 'rb') as f:
            data = tomllib.load(f)
        return cls._from_dict(data)

    @classmethod
    def _from_json(cls, config_path: Path) -> "PackerConfig":
        """Load configuration from JSON file."""
        with open(config_path, 'r') as f:
            data = json.load(f)
        return cls._from_dict(data)

    @classmethod
    def _from_dict(cls, data: Dict[str, Any]) -> "PackerConfig":
        """Create configuration from dictionary."""
        config_data = {}

        if 'packing' in data:
            packing = data['packing']
            config_data['padding'] = packing.get('padding', 2)
            config_data['strategy'] = packing.get('strategy', 'maxrects')
            config_data['allow_partial'] = packing.get('allow_partial', False)
            config_data['power_of_two'] = packing.get('power_of_two', False)
            if 'max_size' in packing:
                config_data['max_size'] = tuple(packing['max_size'])

        if 'trim' in data:
            trim = data['trim']
            config_data['auto_trim'] = trim.get('auto_trim', False)
            config_data['alpha_threshold'] = trim.get('alpha_threshold', 0)

        if 'output' in data:
            output = data['output']
            config_data['output_format'] = output.get('format')
            config_data['compression_level'] = output.get('compression_level', 6)
            config_data['background'] = output.get('background', 'transparent')
            config_data['frame_map_format'] = output.get('frame_map_format', 'json')

        return cls(**config_data)

    @classmethod
    def default(cls) -> "PackerConfig":
        """Create default configuration with environment variable overrides."""
        return cls._apply_env_overrides(cls())

    @classmethod
    def from_env(cls) -> "PackerConfig":
        """Create configuration from environment variables only."""
        config = cls()
        return cls._apply_env_overrides(config)

    @classmethod
    def _apply_env_overrides(cls, config: "PackerConfig") -> "PackerConfig":
        """Apply environment variable overrides to configuration."""

        # Packing settings
        if os.getenv('ATLAS_PACKER_PADDING'):
            config.padding = int(os.getenv('ATLAS_PACKER_PADDING', '2'))

        if os.getenv('ATLAS_PACKER_STRATEGY'):
            config.strategy = os.getenv('ATLAS_PACKER_STRATEGY', 'maxrects')

        if os.getenv('ATLAS_PACKER_ALLOW_PARTIAL'):
            config.allow_partial = os.getenv('ATLAS_PACKER_ALLOW_PARTIAL', 'false').lower() == 'true'

        if os.getenv('ATLAS_PACKER_POWER_OF_TWO'):
            config.power_of_two = os.getenv('ATLAS_PACKER_POWER_OF_TWO', 'false').lower() == 'true'

        # Trim settings
        if os.getenv('ATLAS_PACKER_AUTO_TRIM'):
            config.auto_trim = os.getenv('ATLAS_PACKER_AUTO_TRIM', 'false').lower() == 'true'

        if os.getenv('ATLAS_PACKER_ALPHA_THRESHOLD'):
            config.alpha_threshold = int(os.getenv('ATLAS_PACKER_ALPHA_THRESHOLD', '0'))

        # Output settings
        if os.getenv('ATLAS_PACKER_OUTPUT_FORMAT'):
            config.output_format = os.getenv('ATLAS_PACKER_OUTPUT_FORMAT')

        if os.getenv('ATLAS_PACKER_COMPRESSION_LEVEL'):
            config.compression_level = int(os.getenv('ATLAS_PACKER_COMPRESSION_LEVEL', '6'))

        if os.getenv('ATLAS_PACKER_BACKGROUND'):
            config.background = os.getenv('ATLAS_PACKER_BACKGROUND', 'transparent')

        if os.getenv('ATLAS_PACKER_FRAME_MAP_FORMAT'):
            config.frame_map_format = os.getenv('ATLAS_PACKER_FRAME_MAP_FORMAT', 'json')

        return config

    def validate(self) -> List[str]:
        """Validate configuration and return list of errors."""
        errors = []

        if self.padding < 0:
            errors.append("padding must not be negative")

        try:
            PackingStrategy.from_name(self.strategy)
        except ValueError:
            errors.append("strategy must be shelf or maxrects")

        if len(self.max_size) != 2 or self.max_size[0] <= 0 or self.max_size[1] <= 0:
            errors.append("max_size must have positive dimensions")

        if not 0 <= self.alpha_threshold <= 255:
            errors.append("alpha_threshold must be between 0 and 255")

        if not 0 <= self.compression_level <= 9:
            errors.append("compression_level must be between 0 and 9")

        if self.output_format is not None and self.output_format.upper() not in OUTPUT_FORMATS:
            errors.append("output_format must be PNG or WEBP")

        if self.background not in BACKGROUNDS:
            errors.append("background must be transparent or checkerboard")

        if self.frame_map_format.lower() not in FRAME_MAP_FORMATS:
            errors.append("frame_map_format must be json or toml")

        return errors

    def to_atlas_config(self) -> AtlasConfig:
        """Build the atlas generation settings."""
        return AtlasConfig(
            padding=self.padding,
            strategy=PackingStrategy.from_name(self.strategy),
            allow_partial=self.allow_partial,
            power_of_two=self.power_of_two,
            max_size=tuple(self.max_size),
            background=self.background,
        )
