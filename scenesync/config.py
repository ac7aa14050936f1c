"""
Configuration management for SceneSync.

Configuration comes from environment variables (plus an optional YAML file
for sync categories). Every section is a frozen dataclass: the worker hands
one immutable snapshot to the capture and scheduling code per tick, and UI
toggles produce a new snapshot instead of mutating shared state.

Invariants:
    - All settings have sensible defaults for local development
    - An invalid remote URL never raises out of the sync loops; it only
      blocks push/pull until corrected
    - Category flags are only changed through CategorySettings.with_enabled()

How to change safely:
    - Add new settings with defaults that keep existing behaviour
    - Keep the default category lists aligned with the class hierarchy table
      in scenesync.host.classes
"""

from __future__ import annotations

import logging
import os
import uuid
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

import yaml

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

PLUGIN_VERSION = "3.3"

ABSTRACT_TAG = "Abstract"
CATCH_ALL_CATEGORY = "Misc"

# Types that belong to both Geometry and UI and need both enabled.
DUAL_GATED_CLASSES = ("BillboardGui", "SurfaceGui")
DUAL_GATE_CATEGORIES = ("Geometry", "UI")

RELEVANT_SERVICES = (
    "Workspace",
    "Players",
    "Lighting",
    "MaterialService",
    "ReplicatedStorage",
    "ReplicatedFirst",
    "ServerScriptService",
    "ServerStorage",
    "StarterGui",
    "StarterPack",
    "StarterPlayer",
    "Teams",
    "SoundService",
    "TextChatService",
)

_GEOMETRY_CLASSES = (
    "Part", "BasePart", "WedgePart", "CornerWedgePart",
    "TrussPart", "MeshPart", "UnionOperation", "NegateOperation",
    "IntersectOperation", "PartOperation", "VehicleSeat", "Seat",
    "SpawnLocation", "Platform", "SkateboardPlatform",
    "FlagStand", "Terrain", "TerrainRegion",
    "Model", "Folder", "WorldModel", "Actor",
    "SpecialMesh", "BlockMesh", "CylinderMesh", "FileMesh",
    "Decal", "Texture", "SurfaceAppearance",
)


@dataclass(frozen=True)
class Category:
    """A named group of synced classes.

    Attributes:
        name: Category name (also the key used by UI toggles)
        enabled: Whether entities of this category are synced
        classes: Class names registered under this category
        bases: Supertype class names whose subclasses belong here
    """

    name: str
    enabled: bool
    classes: tuple[str, ...] = ()
    bases: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, name: str, data: dict[str, Any]) -> Category:
        """Create from a YAML/JSON mapping."""
        return cls(
            name=name,
            enabled=bool(data.get("enabled", True)),
            classes=tuple(data.get("classes") or ()),
            bases=tuple(data.get("bases") or ()),
        )


DEFAULT_CATEGORIES: tuple[Category, ...] = (
    Category("Abstract", True, _GEOMETRY_CLASSES + ("BillboardGui", "SurfaceGui")),
    Category(
        "Scripts",
        True,
        (
            "Script", "LocalScript", "ModuleScript",
            "CoreScript", "StarterPlayerScripts", "StarterCharacterScripts",
            "PlayerScripts", "CharacterScripts", "Folder",
            "RemoteEvent", "RemoteFunction", "BindableEvent", "BindableFunction",
        ),
        bases=("BaseScript",),
    ),
    Category(
        "Values",
        True,
        (
            "IntValue", "NumberValue", "BoolValue", "StringValue",
            "ObjectValue", "Vector3Value", "CFrameValue", "Color3Value",
            "RayValue", "BrickColorValue", "DoubleConstrainedValue", "Folder",
        ),
    ),
    Category(
        "UI",
        True,
        (
            "ScreenGui", "BillboardGui", "SurfaceGui", "GuiMain",
            "Frame", "ScrollingFrame", "CanvasGroup",
            "TextLabel", "TextButton", "TextBox",
            "ImageLabel", "ImageButton", "VideoFrame",
            "ViewportFrame", "UIListLayout", "UIGridLayout",
            "UITableLayout", "UIPageLayout", "UIPadding",
            "UIScale", "UISizeConstraint", "UITextSizeConstraint",
            "UIAspectRatioConstraint", "UICorner", "UIGradient",
            "UIStroke", "UIFlexItem", "Folder",
        ),
        bases=("GuiObject", "GuiBase"),
    ),
    Category(
        "Lighting",
        True,
        (
            "Atmosphere", "Sky", "Skybox", "Clouds",
            "BloomEffect", "BlurEffect", "ColorCorrectionEffect",
            "DepthOfFieldEffect", "SunRaysEffect",
            "PointLight", "SpotLight", "SurfaceLight",
            "Lighting", "PostEffect", "Folder",
        ),
    ),
    Category("Geometry", False, _GEOMETRY_CLASSES, bases=("BasePart",)),
    Category(
        "Physics",
        False,
        (
            "Attachment", "Bone", "Motor", "Motor6D",
            "AlignOrientation", "AlignPosition", "AngularVelocity",
            "BallSocketConstraint", "CylindricalConstraint", "HingeConstraint",
            "LineForce", "LinearVelocity", "PlaneConstraint",
            "PrismaticConstraint", "RigidConstraint", "RodConstraint",
            "RopeConstraint", "SpringConstraint", "Torque",
            "TorsionSpringConstraint", "UniversalConstraint", "VectorForce",
            "WeldConstraint", "NoCollisionConstraint", "Weld",
            "Snap", "Glue", "ManualWeld", "ManualGlue",
            "BodyPosition", "BodyVelocity", "BodyGyro",
            "BodyThrust", "BodyAngularVelocity", "RocketPropulsion",
            "BodyMover", "Folder",
        ),
        bases=("Constraint", "JointInstance"),
    ),
    Category(CATCH_ALL_CATEGORY, False),
)


@dataclass(frozen=True)
class CategorySettings:
    """Ordered, immutable set of sync categories."""

    categories: tuple[Category, ...] = DEFAULT_CATEGORIES

    def get(self, name: str) -> Category | None:
        for category in self.categories:
            if category.name == name:
                return category
        return None

    def is_enabled(self, name: str) -> bool:
        category = self.get(name)
        return bool(category and category.enabled)

    def with_enabled(self, name: str, enabled: bool) -> CategorySettings:
        """Return a copy with one category's flag changed.

        Raises:
            ConfigurationError: If no category has that name
        """
        if self.get(name) is None:
            raise ConfigurationError(f"Unknown sync category '{name}'", setting="categories")
        return CategorySettings(
            tuple(
                replace(c, enabled=enabled) if c.name == name else c for c in self.categories
            )
        )

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(c.name for c in self.categories)


def load_categories(path: str | Path) -> CategorySettings:
    """Load sync categories from a YAML file.

    Example file:
        categories:
          Scripts:
            enabled: true
            classes: [Script, LocalScript, ModuleScript]
            bases: [BaseScript]
          Misc:
            enabled: false

    Raises:
        ConfigurationError: If the file cannot be read or has the wrong shape
    """
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Cannot load categories from {path}: {e}", setting="categories")

    raw = data.get("categories") if isinstance(data, dict) else None
    if not isinstance(raw, dict) or not raw:
        raise ConfigurationError(
            f"Categories file {path} must contain a non-empty 'categories' mapping",
            setting="categories",
        )

    categories = []
    for name, body in raw.items():
        if not isinstance(body, dict):
            raise ConfigurationError(f"Category '{name}' must be a mapping", setting="categories")
        categories.append(Category.from_dict(str(name), body))
    return CategorySettings(tuple(categories))


_ALLOWED_HOST_SUFFIXES = ("firebaseio.com", "firebase.com")
_LOCAL_HOSTS = ("localhost", "127.0.0.1")


def validate_remote_url(url: str | None) -> tuple[bool, str]:
    """Check that a remote base URL is usable.

    A valid URL is a bare base URL (no path, query, fragment or `.json`
    suffix) pointing either at a Firebase Realtime Database host over https,
    or at a local emulator over http or https.

    Returns:
        (is_valid, message)
    """
    if not url or not url.strip():
        return False, "URL cannot be empty"

    url = url.strip()
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https"):
        return False, "URL must start with http:// or https://"

    host = (parts.hostname or "").lower()
    is_local = host in _LOCAL_HOSTS
    is_firebase = any(host == s or host.endswith("." + s) for s in _ALLOWED_HOST_SUFFIXES)
    if not (is_local or is_firebase):
        return (
            False,
            "URL should be a Firebase Realtime Database URL (firebaseio.com) "
            "or localhost for testing",
        )

    if parts.scheme == "http" and not is_local:
        return False, "Firebase URLs must use https://"

    if url.endswith(".json") or parts.path not in ("", "/") or parts.query or parts.fragment:
        return False, "URL should be the base Firebase URL without .json or specific paths"

    return True, "Valid Firebase URL format"


@dataclass(frozen=True)
class RemoteConfig:
    """Remote JSON store configuration.

    Attributes:
        base_url: Base URL of the store (validated by validate_remote_url)
        project_id: Project key under /projects/
        timeout_seconds: Per-request transport timeout
        fetch_limit: Number of most recent remote batches pulled per fetch
        plugin_version: Version tag stamped on every pushed envelope
    """

    base_url: str = ""
    project_id: str = "default"
    timeout_seconds: float = 10.0
    fetch_limit: int = 10
    plugin_version: str = PLUGIN_VERSION

    @classmethod
    def from_env(cls) -> RemoteConfig:
        """Load configuration from environment variables."""
        return cls(
            base_url=os.getenv("SCENESYNC_REMOTE_URL", "").strip().rstrip("/"),
            project_id=os.getenv("SCENESYNC_PROJECT_ID", "default"),
            timeout_seconds=float(os.getenv("SCENESYNC_REMOTE_TIMEOUT", "10")),
            fetch_limit=int(os.getenv("SCENESYNC_FETCH_LIMIT", "10")),
            plugin_version=os.getenv("SCENESYNC_PLUGIN_VERSION", PLUGIN_VERSION),
        )

    @property
    def is_configured(self) -> bool:
        return validate_remote_url(self.base_url)[0]


@dataclass(frozen=True)
class ThrottleConfig:
    """Debounce, batching and polling timings (seconds).

    Attributes:
        batch_interval: Maximum time between scheduled batch boundaries
        settle_time: Quiet period after an entity's last mutation
        min_push_interval: Minimum time between two pushes
        max_batch_size: Settled count that forces a flush
        dedup_window: Window in which identical capture events collapse
        dedup_sweep_interval: Cadence of the dedup cache sweep
        tick_interval: Scheduler tick period
        fetch_interval: Remote pull period
    """

    batch_interval: float = 10.0
    settle_time: float = 2.0
    min_push_interval: float = 5.0
    max_batch_size: int = 50
    dedup_window: float = 0.1
    dedup_sweep_interval: float = 30.0
    tick_interval: float = 1.0
    fetch_interval: float = 15.0

    @classmethod
    def from_env(cls) -> ThrottleConfig:
        """Load configuration from environment variables."""
        return cls(
            batch_interval=float(os.getenv("SCENESYNC_BATCH_INTERVAL", "10")),
            settle_time=float(os.getenv("SCENESYNC_SETTLE_TIME", "2")),
            min_push_interval=float(os.getenv("SCENESYNC_MIN_PUSH_INTERVAL", "5")),
            max_batch_size=int(os.getenv("SCENESYNC_MAX_BATCH_SIZE", "50")),
            dedup_window=float(os.getenv("SCENESYNC_DEDUP_WINDOW", "0.1")),
            dedup_sweep_interval=float(os.getenv("SCENESYNC_DEDUP_SWEEP_INTERVAL", "30")),
            tick_interval=float(os.getenv("SCENESYNC_TICK_INTERVAL", "1")),
            fetch_interval=float(os.getenv("SCENESYNC_FETCH_INTERVAL", "15")),
        )


@dataclass(frozen=True)
class SerializerConfig:
    """Serializer configuration.

    Attributes:
        max_depth: Recursion bound for full serialization
        quality_attribute: Name of the normalized quality attribute
        quality_default: Value written when the attribute is missing or invalid
        quality_min: Lower clamp bound
        quality_max: Upper clamp bound
        services: Root children included in a full snapshot
    """

    max_depth: int = 50
    quality_attribute: str = "RLQuality"
    quality_default: int = 50
    quality_min: int = 0
    quality_max: int = 100
    services: tuple[str, ...] = RELEVANT_SERVICES

    @classmethod
    def from_env(cls) -> SerializerConfig:
        """Load configuration from environment variables."""
        services = os.getenv("SCENESYNC_SERVICES")
        return cls(
            max_depth=int(os.getenv("SCENESYNC_MAX_DEPTH", "50")),
            quality_attribute=os.getenv("SCENESYNC_QUALITY_ATTRIBUTE", "RLQuality"),
            services=tuple(s.strip() for s in services.split(",") if s.strip())
            if services
            else RELEVANT_SERVICES,
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Root logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "text"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "text"),
        )


def _env_flag(name: str, default: bool) -> bool:
    return os.getenv(name, "true" if default else "false").lower() == "true"


@dataclass(frozen=True)
class SyncConfig:
    """Complete sync configuration snapshot.

    Attributes:
        sync_enabled: Master switch for capture and push
        apply_remote_changes: Whether pulled remote changes mutate the tree
        debug: Verbose diagnostics (the plugin's debug mode)
        session_id: Identifies batches pushed by this worker
        categories: Sync category flags
        remote: Remote store configuration
        throttle: Timing configuration
        serializer: Serializer configuration
        observability: Logging configuration
    """

    sync_enabled: bool = True
    apply_remote_changes: bool = False
    debug: bool = False
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    categories: CategorySettings = field(default_factory=CategorySettings)
    remote: RemoteConfig = field(default_factory=RemoteConfig)
    throttle: ThrottleConfig = field(default_factory=ThrottleConfig)
    serializer: SerializerConfig = field(default_factory=SerializerConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> SyncConfig:
        """Load complete configuration from environment variables.

        Raises:
            ConfigurationError: If a setting is structurally invalid.
        """
        categories_file = os.getenv("SCENESYNC_CATEGORIES_FILE")
        try:
            config = cls(
                sync_enabled=_env_flag("SCENESYNC_ENABLED", True),
                apply_remote_changes=_env_flag("SCENESYNC_APPLY_REMOTE", False),
                debug=_env_flag("SCENESYNC_DEBUG", False),
                categories=load_categories(categories_file)
                if categories_file
                else CategorySettings(),
                remote=RemoteConfig.from_env(),
                throttle=ThrottleConfig.from_env(),
                serializer=SerializerConfig.from_env(),
                observability=ObservabilityConfig.from_env(),
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid numeric setting: {e}")

        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        The remote URL is not checked here: an unset or invalid
        URL blocks push/pull at runtime instead of preventing startup.

        Raises:
            ConfigurationError: If configuration is invalid.
        """
        t = self.throttle
        for name in ("batch_interval", "settle_time", "min_push_interval", "dedup_window"):
            if getattr(t, name) < 0:
                raise ConfigurationError(f"{name} must not be negative", setting=name)
        for name in ("tick_interval", "fetch_interval", "dedup_sweep_interval"):
            if getattr(t, name) <= 0:
                raise ConfigurationError(f"{name} must be positive", setting=name)
        if t.max_batch_size < 1:
            raise ConfigurationError("max_batch_size must be at least 1", setting="max_batch_size")
        if self.remote.fetch_limit < 1:
            raise ConfigurationError("fetch_limit must be at least 1", setting="fetch_limit")
        if self.serializer.max_depth < 0:
            raise ConfigurationError("max_depth must not be negative", setting="max_depth")
        s = self.serializer
        if not s.quality_min <= s.quality_default <= s.quality_max:
            raise ConfigurationError(
                "quality_default must lie within [quality_min, quality_max]",
                setting="quality_default",
            )
        if self.categories.get(CATCH_ALL_CATEGORY) is None:
            logger.warning(
                f"No '{CATCH_ALL_CATEGORY}' category configured, uncategorized entities never sync"
            )

    def with_changes(self, **changes: Any) -> SyncConfig:
        """Return a new snapshot with top-level fields replaced."""
        return replace(self, **changes)

    def with_category_enabled(self, name: str, enabled: bool) -> SyncConfig:
        return replace(self, categories=self.categories.with_enabled(name, enabled))

    def with_remote_url(self, url: str) -> SyncConfig:
        return replace(self, remote=replace(self.remote, base_url=url.strip().rstrip("/")))

    def log_config(self) -> None:
        """Log configuration."""
        logger.info(
            "Sync configuration loaded",
            extra={
                "sync_enabled": self.sync_enabled,
                "apply_remote_changes": self.apply_remote_changes,
                "debug": self.debug,
                "project_id": self.remote.project_id,
                "remote_configured": self.remote.is_configured,
                "batch_interval": self.throttle.batch_interval,
                "settle_time": self.throttle.settle_time,
                "min_push_interval": self.throttle.min_push_interval,
                "max_batch_size": self.throttle.max_batch_size,
                "enabled_categories": [c.name for c in self.categories.categories if c.enabled],
            },
        )
