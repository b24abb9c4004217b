"""
Configuration File Support for SiteTrace.

Provides TOML-based configuration management:
- Default config location (~/.sitetrace/config.toml)
- Project-level config (.sitetrace.toml)
- Environment variable overrides
- Config validation and error messages
- Config generation and display commands

by BitSpectreLabs
"""

import os
import tomllib
from pathlib import Path
from dataclasses import dataclass, field, asdict
from typing import Optional, Dict, Any, List


DEFAULT_DNS_SERVERS = ["8.8.8.8", "1.1.1.1", "9.9.9.9", "208.67.222.222"]


def _split_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class LookupConfig:
    """DNS lookup configuration."""
    servers: List[str] = field(default_factory=lambda: list(DEFAULT_DNS_SERVERS))
    timeout: float = 10.0
    command: str = "nslookup"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LookupConfig":
        """Create from dictionary."""
        servers = data.get("servers", DEFAULT_DNS_SERVERS)
        if isinstance(servers, str):
            servers = _split_list(servers)
        return cls(
            servers=list(servers),
            timeout=data.get("timeout", 10.0),
            command=data.get("command", "nslookup"),
        )


@dataclass
class ProbesConfig:
    """Traceroute and ping configuration."""
    traceroute: bool = True
    ping: bool = True
    ping_count: int = 4
    max_hops: int = 30
    traceroute_timeout: float = 120.0
    ping_timeout: float = 30.0
    concurrency: int = 4

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProbesConfig":
        """Create from dictionary."""
        return cls(
            traceroute=data.get("traceroute", True),
            ping=data.get("ping", True),
            ping_count=data.get("ping_count", 4),
            max_hops=data.get("max_hops", 30),
            traceroute_timeout=data.get("traceroute_timeout", 120.0),
            ping_timeout=data.get("ping_timeout", 30.0),
            concurrency=data.get("concurrency", 4),
        )


@dataclass
class OutputConfig:
    """Output configuration."""
    color_enabled: bool = True
    verbose: bool = False
    quiet: bool = False
    save_results: bool = False
    archive: bool = False
    results_directory: str = "~/.sitetrace/results"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OutputConfig":
        """Create from dictionary."""
        return cls(
            color_enabled=data.get("color_enabled", True),
            verbose=data.get("verbose", False),
            quiet=data.get("quiet", False),
            save_results=data.get("save_results", False),
            archive=data.get("archive", False),
            results_directory=data.get("results_directory", "~/.sitetrace/results"),
        )


@dataclass
class AdvancedConfig:
    """Advanced configuration."""
    run_timeout: float = 120.0
    check_connectivity: bool = True
    log_level: str = "WARNING"
    log_file: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AdvancedConfig":
        """Create from dictionary."""
        return cls(
            run_timeout=data.get("run_timeout", 120.0),
            check_connectivity=data.get("check_connectivity", True),
            log_level=data.get("log_level", "WARNING"),
            log_file=data.get("log_file"),
        )


@dataclass
class SiteTraceConfig:
    """
    Complete SiteTrace configuration.

    Contains all configuration sections.
    """
    lookup: LookupConfig = field(default_factory=LookupConfig)
    probes: ProbesConfig = field(default_factory=ProbesConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    advanced: AdvancedConfig = field(default_factory=AdvancedConfig)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "lookup": self.lookup.to_dict(),
            "probes": self.probes.to_dict(),
            "output": self.output.to_dict(),
            "advanced": self.advanced.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SiteTraceConfig":
        """Create from dictionary."""
        return cls(
            lookup=LookupConfig.from_dict(data.get("lookup", {})),
            probes=ProbesConfig.from_dict(data.get("probes", {})),
            output=OutputConfig.from_dict(data.get("output", {})),
            advanced=AdvancedConfig.from_dict(data.get("advanced", {})),
        )

    def get_value(self, key_path: str) -> Any:
        """
        Get a configuration value by dot-separated path.

        Args:
            key_path: Dot-separated path (e.g., "lookup.timeout")

        Returns:
            Configuration value
        """
        parts = key_path.split(".")
        obj: Any = self.to_dict()

        for part in parts:
            if isinstance(obj, dict):
                if part not in obj:
                    raise KeyError(f"Configuration key not found: {key_path}")
                obj = obj[part]
            else:
                raise KeyError(f"Configuration key not found: {key_path}")

        return obj

    def set_value(self, key_path: str, value: Any) -> None:
        """
        Set a configuration value by dot-separated path.

        Args:
            key_path: Dot-separated path (e.g., "probes.ping_count")
            value: Value to set
        """
        parts = key_path.split(".")
        if len(parts) < 2:
            raise ValueError(f"Invalid key path: {key_path}")

        section = parts[0]
        key = parts[1]

        if not hasattr(self, section):
            raise KeyError(f"Configuration section not found: {section}")

        section_obj = getattr(self, section)
        if not hasattr(section_obj, key):
            raise KeyError(f"Configuration key not found: {key_path}")

        # Convert value type if needed
        current_value = getattr(section_obj, key)
        if current_value is not None and isinstance(value, str):
            if isinstance(current_value, bool):
                value = value.lower() in ("true", "1", "yes", "on")
            elif isinstance(current_value, int):
                value = int(value)
            elif isinstance(current_value, float):
                value = float(value)
            elif isinstance(current_value, list):
                value = _split_list(value)
        setattr(section_obj, key, value)


class ConfigError(Exception):
    """Configuration error."""
    pass


class ConfigManager:
    """
    Configuration file manager.

    Handles loading and saving configuration from multiple sources:
    1. Built-in defaults
    2. User config (~/.sitetrace/config.toml)
    3. Project config (.sitetrace.toml)
    4. Environment variables (SITETRACE_*)
    5. CLI arguments (highest priority)
    """

    DEFAULT_USER_CONFIG = Path.home() / ".sitetrace" / "config.toml"
    PROJECT_CONFIG_NAME = ".sitetrace.toml"
    ENV_PREFIX = "SITETRACE_"

    def __init__(
        self,
        user_config_path: Optional[Path] = None,
        project_config_path: Optional[Path] = None,
        load_env: bool = True
    ):
        """
        Initialize ConfigManager.

        Args:
            user_config_path: Custom user config path
            project_config_path: Custom project config path
            load_env: Whether to load from environment variables
        """
        self.user_config_path = user_config_path or self.DEFAULT_USER_CONFIG
        self.project_config_path = project_config_path
        self.load_env = load_env

        self._config = SiteTraceConfig()
        self._loaded_sources: List[str] = ["defaults"]

    def load(self) -> SiteTraceConfig:
        """
        Load configuration from all sources.

        Priority (lowest to highest):
        1. Built-in defaults
        2. User config
        3. Project config
        4. Environment variables

        Returns:
            Merged SiteTraceConfig
        """
        self._config = SiteTraceConfig()
        self._loaded_sources = ["defaults"]

        if self.user_config_path.exists():
            try:
                self._load_toml_file(self.user_config_path)
                self._loaded_sources.append(f"user:{self.user_config_path}")
            except (OSError, tomllib.TOMLDecodeError) as e:
                raise ConfigError(f"Error loading user config: {e}")

        project_config = self._find_project_config()
        if project_config and project_config.exists():
            try:
                self._load_toml_file(project_config)
                self._loaded_sources.append(f"project:{project_config}")
            except (OSError, tomllib.TOMLDecodeError) as e:
                raise ConfigError(f"Error loading project config: {e}")

        if self.load_env:
            self._load_environment()

        return self._config

    def get_config(self) -> SiteTraceConfig:
        """Get current configuration."""
        return self._config

    def get_loaded_sources(self) -> List[str]:
        """Get list of loaded configuration sources."""
        return self._loaded_sources.copy()

    def save_user_config(
        self,
        config: Optional[SiteTraceConfig] = None,
        path: Optional[Path] = None
    ) -> Path:
        """
        Save configuration to user config file.

        Args:
            config: Configuration to save (uses current if None)
            path: Custom path (uses default if None)

        Returns:
            Path to saved config file
        """
        config = config or self._config
        path = path or self.user_config_path

        path.parent.mkdir(parents=True, exist_ok=True)
        content = self._generate_toml(config)

        with open(path, "w", encoding="utf-8") as f:
            f.write(content)

        return path

    def init_config(
        self,
        path: Optional[Path] = None,
        include_comments: bool = True
    ) -> Path:
        """
        Initialize a new configuration file with defaults.

        Args:
            path: Path for config file
            include_comments: Whether to include comments

        Returns:
            Path to created config file
        """
        path = path or self.user_config_path

        if path.exists():
            raise ConfigError(f"Config file already exists: {path}")

        content = self._generate_toml(SiteTraceConfig(), include_comments=include_comments)

        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write(content)

        return path

    def get_value(self, key_path: str) -> Any:
        """Get a configuration value by dot-separated path."""
        return self._config.get_value(key_path)

    def set_value(self, key_path: str, value: Any) -> None:
        """Set a configuration value by dot-separated path."""
        self._config.set_value(key_path, value)

    def show_config(self, section: Optional[str] = None) -> str:
        """
        Generate a display string for configuration.

        Args:
            section: Specific section to show (shows all if None)

        Returns:
            Formatted configuration string
        """
        config_dict = self._config.to_dict()

        if section:
            if section not in config_dict:
                raise ConfigError(f"Unknown section: {section}")
            config_dict = {section: config_dict[section]}

        return self._format_config_display(config_dict)

    def validate(self) -> List[str]:
        """
        Validate current configuration.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []
        config = self._config

        if not config.lookup.servers:
            errors.append("lookup.servers must list at least one DNS server")
        for server in config.lookup.servers:
            if not server.strip() or server.strip().startswith("-"):
                errors.append(f"lookup.servers contains an invalid entry: '{server}'")
        if config.lookup.timeout <= 0:
            errors.append("lookup.timeout must be positive")
        if not config.lookup.command.strip():
            errors.append("lookup.command must not be empty")

        if config.probes.ping_count < 1:
            errors.append("probes.ping_count must be at least 1")
        if not 1 <= config.probes.max_hops <= 255:
            errors.append("probes.max_hops must be between 1 and 255")
        if config.probes.traceroute_timeout <= 0 or config.probes.ping_timeout <= 0:
            errors.append("probes timeouts must be positive")
        if config.probes.concurrency < 1:
            errors.append("probes.concurrency must be at least 1")

        if config.advanced.run_timeout <= 0:
            errors.append("advanced.run_timeout must be positive")
        elif config.advanced.run_timeout < config.lookup.timeout:
            errors.append("advanced.run_timeout should not be shorter than lookup.timeout")

        valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if config.advanced.log_level.upper() not in valid_log_levels:
            errors.append(f"advanced.log_level must be one of: {', '.join(valid_log_levels)}")

        return errors

    def _find_project_config(self) -> Optional[Path]:
        """Find project config file by walking up directory tree."""
        if self.project_config_path:
            return self.project_config_path

        current = Path.cwd()

        while current != current.parent:
            config_path = current / self.PROJECT_CONFIG_NAME
            if config_path.exists():
                return config_path
            current = current.parent

        return None

    def _load_toml_file(self, path: Path) -> None:
        """Load and merge a TOML config file."""
        with open(path, "rb") as f:
            data = tomllib.load(f)

        self._merge_config(data)

    def _merge_config(self, data: Dict[str, Any]) -> None:
        """Merge loaded config data into current config."""
        if "lookup" in data:
            self._config.lookup = LookupConfig.from_dict({
                **self._config.lookup.to_dict(),
                **data["lookup"]
            })

        if "probes" in data:
            self._config.probes = ProbesConfig.from_dict({
                **self._config.probes.to_dict(),
                **data["probes"]
            })

        if "output" in data:
            self._config.output = OutputConfig.from_dict({
                **self._config.output.to_dict(),
                **data["output"]
            })

        if "advanced" in data:
            self._config.advanced = AdvancedConfig.from_dict({
                **self._config.advanced.to_dict(),
                **data["advanced"]
            })

    def _load_environment(self) -> None:
        """Load configuration from environment variables."""
        env_mappings = {
            # Lookup
            f"{self.ENV_PREFIX}DNS_SERVERS": ("lookup", "servers", _split_list),
            f"{self.ENV_PREFIX}LOOKUP_TIMEOUT": ("lookup", "timeout", float),
            f"{self.ENV_PREFIX}LOOKUP_COMMAND": ("lookup", "command", str),

            # Probes
            f"{self.ENV_PREFIX}TRACEROUTE": ("probes", "traceroute", self._parse_bool),
            f"{self.ENV_PREFIX}PING": ("probes", "ping", self._parse_bool),
            f"{self.ENV_PREFIX}PING_COUNT": ("probes", "ping_count", int),
            f"{self.ENV_PREFIX}MAX_HOPS": ("probes", "max_hops", int),

            # Output
            f"{self.ENV_PREFIX}COLOR": ("output", "color_enabled", self._parse_bool),
            f"{self.ENV_PREFIX}VERBOSE": ("output", "verbose", self._parse_bool),
            f"{self.ENV_PREFIX}QUIET": ("output", "quiet", self._parse_bool),
            f"{self.ENV_PREFIX}RESULTS_DIR": ("output", "results_directory", str),

            # Advanced
            f"{self.ENV_PREFIX}RUN_TIMEOUT": ("advanced", "run_timeout", float),
            f"{self.ENV_PREFIX}LOG_LEVEL": ("advanced", "log_level", str),
            f"{self.ENV_PREFIX}LOG_FILE": ("advanced", "log_file", str),
        }

        for env_var, (section, key, converter) in env_mappings.items():
            value = os.environ.get(env_var)
            if value is None:
                continue
            try:
                converted = converter(value)
            except (ValueError, TypeError):
                continue
            setattr(getattr(self._config, section), key, converted)
            if "environment" not in self._loaded_sources:
                self._loaded_sources.append("environment")

    @staticmethod
    def _parse_bool(value: str) -> bool:
        """Parse boolean from string."""
        return value.lower() in ("true", "1", "yes", "on")

    def _generate_toml(
        self,
        config: SiteTraceConfig,
        include_comments: bool = True
    ) -> str:
        """Generate TOML content from config."""
        lines = []

        if include_comments:
            lines.extend([
                "# SiteTrace Configuration File",
                "# Generated by SiteTrace",
                "",
                "# DNS lookup settings",
                "# Every server listed here is queried for each run",
            ])
        servers_str = ", ".join(f'"{s}"' for s in config.lookup.servers)
        lines.append("[lookup]")
        lines.append(f"servers = [{servers_str}]")
        lines.append(f"timeout = {config.lookup.timeout}")
        lines.append(f'command = "{config.lookup.command}"')
        lines.append("")

        if include_comments:
            lines.append("# Traceroute and ping settings")
        lines.append("[probes]")
        lines.append(f"traceroute = {str(config.probes.traceroute).lower()}")
        lines.append(f"ping = {str(config.probes.ping).lower()}")
        lines.append(f"ping_count = {config.probes.ping_count}")
        lines.append(f"max_hops = {config.probes.max_hops}")
        lines.append(f"traceroute_timeout = {config.probes.traceroute_timeout}")
        lines.append(f"ping_timeout = {config.probes.ping_timeout}")
        lines.append(f"concurrency = {config.probes.concurrency}")
        lines.append("")

        if include_comments:
            lines.append("# Output settings")
        lines.append("[output]")
        lines.append(f"color_enabled = {str(config.output.color_enabled).lower()}")
        lines.append(f"verbose = {str(config.output.verbose).lower()}")
        lines.append(f"quiet = {str(config.output.quiet).lower()}")
        lines.append(f"save_results = {str(config.output.save_results).lower()}")
        lines.append(f"archive = {str(config.output.archive).lower()}")
        lines.append(f'results_directory = "{config.output.results_directory}"')
        lines.append("")

        if include_comments:
            lines.append("# Advanced settings")
        lines.append("[advanced]")
        lines.append(f"run_timeout = {config.advanced.run_timeout}")
        lines.append(f"check_connectivity = {str(config.advanced.check_connectivity).lower()}")
        lines.append(f'log_level = "{config.advanced.log_level}"')
        if config.advanced.log_file:
            lines.append(f'log_file = "{config.advanced.log_file}"')
        lines.append("")

        return "\n".join(lines)

    def _format_config_display(self, config_dict: Dict[str, Any], indent: int = 0) -> str:
        """Format config dictionary for display."""
        lines = []
        prefix = "  " * indent

        for key, value in config_dict.items():
            if isinstance(value, dict):
                lines.append(f"{prefix}[{key}]")
                lines.append(self._format_config_display(value, indent + 1))
            elif isinstance(value, list):
                list_str = ", ".join(str(v) for v in value)
                lines.append(f"{prefix}{key} = [{list_str}]")
            elif isinstance(value, str):
                lines.append(f'{prefix}{key} = "{value}"')
            elif isinstance(value, bool):
                lines.append(f"{prefix}{key} = {str(value).lower()}")
            elif value is None:
                lines.append(f"{prefix}{key} = (not set)")
            else:
                lines.append(f"{prefix}{key} = {value}")

        return "\n".join(lines)


# Global config manager instance
_config_manager: Optional[ConfigManager] = None


def get_config_manager() -> ConfigManager:
    """Get or create global config manager."""
    global _config_manager
    if _config_manager is None:
        manager = ConfigManager()
        manager.load()
        _config_manager = manager
    return _config_manager


def get_config() -> SiteTraceConfig:
    """Get current configuration."""
    return get_config_manager().get_config()
