"""Application configuration.

Settings come from the optional ``metadata/app.yaml`` file, then environment
variables override individual values:

    DATABASE_URL / CRUDFORGE_DB_PATH   database location (see DatabaseConfig)
    CRUDFORGE_SECRET_KEY               JWT signing key
    CRUDFORGE_DISABLE_AUTH             "true" turns every auth gate off
    CRUDFORGE_VALIDATION_RESOLVER      "jsonschema" or "pydantic"
    CRUDFORGE_MODULES_PACKAGE          package scanned for hooks, dtos, schemas
    CRUDFORGE_BCRYPT_ROUNDS            bcrypt cost factor
    CRUDFORGE_LOG_LEVEL                root log level
    CRUDFORGE_UPLOAD_DIR               storage root for uploaded files
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from crudforge.metadata.loader import AuthPolicy, RouterConfig
from crudforge.persistence.config import DatabaseConfig

DEFAULT_SECRET_KEY = "dev-secret-change-in-production"
DEFAULT_PASSWORD_REGEX = r"^(?=.*[A-Z])(?=.*[a-z])(?=.*\d).+$"
DEFAULT_PASSWORD_MESSAGE = (
    "The password must contain at least one uppercase letter, "
    "one lowercase letter, and one number"
)
SEND_TOKEN_MODES = ("response-only", "cookie-only", "both")


def resolve_base_path() -> Path:
    """Project root: the working directory, or its parent when run from backend/."""
    cwd = Path.cwd()
    if cwd.name == "backend":
        return cwd.parent
    return cwd


def _env_flag(name: str) -> bool | None:
    value = os.environ.get(name)
    if value is None:
        return None
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class AuthConfig:
    enabled: bool = True
    user_model: str = "User"
    secret_key: str = DEFAULT_SECRET_KEY
    expires_in: int = 90 * 24 * 3600
    cookie_name: str = "crudforge_access_token"
    cookie_secure: bool = False
    cookie_same_site: str = "lax"
    username_field: str = "email"
    send_access_token_through: str = "both"
    password_regex: str = DEFAULT_PASSWORD_REGEX
    password_message: str = DEFAULT_PASSWORD_MESSAGE
    require_verification: bool = False
    public_actions: list[str] = field(default_factory=list)
    bcrypt_rounds: int = 12


@dataclass(frozen=True)
class UploadRestriction:
    """Limits for one upload file type; an empty extension tuple allows any."""

    max_count: int
    max_size: int
    extensions: tuple[str, ...] = ()

    def allows(self, extension: str) -> bool:
        return not self.extensions or extension.lower() in self.extensions


MB = 1024 * 1024

DEFAULT_UPLOAD_RESTRICTIONS = {
    "images": UploadRestriction(
        max_count=30,
        max_size=15 * MB,
        extensions=(
            "jpeg", "jpg", "png", "gif", "webp", "svg", "bmp", "tiff", "heif",
            "heic", "ico", "jfif", "raw", "psd", "avif",
        ),
    ),
    "videos": UploadRestriction(
        max_count=10,
        max_size=5096 * MB,
        extensions=(
            "mp4", "avi", "mov", "mkv", "flv", "wmv", "webm", "mpg", "mpeg",
            "3gp", "m4v", "ogv", "m2ts", "mts",
        ),
    ),
    "documents": UploadRestriction(
        max_count=30,
        max_size=50 * MB,
        extensions=(
            "pdf", "doc", "docx", "xls", "xlsx", "ppt", "pptx", "odt", "ods",
            "odp", "txt", "rtf", "csv", "epub", "md", "xml", "json", "yaml",
            "yml", "html", "htm",
        ),
    ),
    "files": UploadRestriction(max_count=10, max_size=5096 * MB),
}


@dataclass
class FileUploadConfig:
    """Settings for the ``/uploads`` surface.

    Attributes:
        enabled: Whether the upload routes are composed at all
        base_route: Mount point relative to the API prefix
        upload_dir: Storage root; relative paths resolve against the project root
        restrictions: Limits per file type; the keys are the accepted file types
        auth: Authentication and access-control table for the uploads
        router: Per-action route switches (findFile, uploadFile, ...)
    """

    enabled: bool = True
    base_route: str = "/uploads"
    upload_dir: str = "uploads"
    restrictions: dict[str, UploadRestriction] = field(
        default_factory=lambda: dict(DEFAULT_UPLOAD_RESTRICTIONS)
    )
    auth: AuthPolicy = field(default_factory=AuthPolicy)
    router: RouterConfig = field(default_factory=RouterConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FileUploadConfig:
        restrictions = dict(DEFAULT_UPLOAD_RESTRICTIONS)
        for file_type, limits in (data.get("restrictions") or {}).items():
            base = restrictions.get(file_type, DEFAULT_UPLOAD_RESTRICTIONS["files"])
            restrictions[file_type] = UploadRestriction(
                max_count=limits.get("maxCount", base.max_count),
                max_size=limits.get("maxSize", base.max_size),
                extensions=tuple(
                    ext.lower().lstrip(".") for ext in limits.get("extensions", base.extensions)
                ),
            )
        base_route = "/" + str(data.get("baseRoute", "/uploads")).strip("/")
        return cls(
            enabled=data.get("enabled", True),
            base_route=base_route,
            upload_dir=data.get("baseUploadDir", "uploads"),
            restrictions=restrictions,
            auth=AuthPolicy(
                authentication=data.get("authentication", True),
                access_control=data.get("accessControl"),
            ),
            router=RouterConfig(disable=data.get("disable", False)),
        )


@dataclass
class AppConfig:
    """Resolved application settings."""

    base_path: Path | None = None
    database: DatabaseConfig = field(
        default_factory=lambda: DatabaseConfig(url="sqlite:///:memory:")
    )
    api_prefix: str = "/api"
    auth: AuthConfig = field(default_factory=AuthConfig)
    file_upload: FileUploadConfig = field(default_factory=FileUploadConfig)
    validation_resolver: str = "jsonschema"
    allow_query_options: bool = False
    auto_approve_conflicts: bool = False
    modules_package: str | None = None
    log_level: str = "INFO"

    @property
    def metadata_path(self) -> Path | None:
        if self.base_path is None:
            return None
        return self.base_path / "metadata"

    @classmethod
    def load(cls, base_path: Path | None = None) -> AppConfig:
        """Read ``<base_path>/metadata/app.yaml`` and apply env overrides."""
        data: dict[str, Any] = {}
        if base_path is not None:
            app_file = base_path / "metadata" / "app.yaml"
            if app_file.exists():
                with open(app_file) as f:
                    data = yaml.safe_load(f) or {}

        config = cls.from_dict(data, base_path=base_path)
        config.database = DatabaseConfig.from_env(base_path)
        config.apply_env()
        return config

    @classmethod
    def from_dict(cls, data: dict[str, Any], base_path: Path | None = None) -> AppConfig:
        """Build a config from the parsed app.yaml structure."""
        auth_data = data.get("authentication") or {}
        jwt_data = auth_data.get("jwt") or {}
        login_data = auth_data.get("login") or {}
        password_data = auth_data.get("passwordValidation") or {}

        send_through = login_data.get("sendAccessTokenThrough", "both")
        if send_through not in SEND_TOKEN_MODES:
            raise ValueError(
                f"authentication.login.sendAccessTokenThrough must be one of "
                f"{', '.join(SEND_TOKEN_MODES)}, got '{send_through}'"
            )

        auth = AuthConfig(
            enabled=auth_data.get("enabled", True),
            user_model=auth_data.get("userModel", "User"),
            expires_in=jwt_data.get("expiresIn", AuthConfig.expires_in),
            cookie_name=jwt_data.get("cookieName", AuthConfig.cookie_name),
            cookie_secure=jwt_data.get("cookieSecure", False),
            cookie_same_site=jwt_data.get("cookieSameSite", "lax"),
            username_field=login_data.get("usernameField", "email"),
            send_access_token_through=send_through,
            password_regex=password_data.get("regex", DEFAULT_PASSWORD_REGEX),
            password_message=password_data.get("message", DEFAULT_PASSWORD_MESSAGE),
            require_verification=auth_data.get("requireVerification", False),
            public_actions=list(auth_data.get("publicActions", [])),
            bcrypt_rounds=auth_data.get("bcryptRounds", 12),
        )

        return cls(
            base_path=base_path,
            api_prefix=(data.get("api") or {}).get("prefix", "/api"),
            auth=auth,
            file_upload=FileUploadConfig.from_dict(data.get("fileUpload") or {}),
            validation_resolver=(data.get("validation") or {}).get("resolver", "jsonschema"),
            allow_query_options=(data.get("request") or {}).get("allowQueryOptions", False),
            auto_approve_conflicts=(data.get("tooling") or {}).get(
                "autoApproveConflicts", False
            ),
            modules_package=data.get("modulesPackage"),
        )

    def apply_env(self) -> None:
        """Override settings from CRUDFORGE_* environment variables."""
        secret = os.environ.get("CRUDFORGE_SECRET_KEY")
        if secret:
            self.auth.secret_key = secret

        disabled = _env_flag("CRUDFORGE_DISABLE_AUTH")
        if disabled is not None:
            self.auth.enabled = not disabled

        resolver = os.environ.get("CRUDFORGE_VALIDATION_RESOLVER")
        if resolver:
            self.validation_resolver = resolver

        package = os.environ.get("CRUDFORGE_MODULES_PACKAGE")
        if package:
            self.modules_package = package

        rounds = os.environ.get("CRUDFORGE_BCRYPT_ROUNDS")
        if rounds:
            self.auth.bcrypt_rounds = int(rounds)

        level = os.environ.get("CRUDFORGE_LOG_LEVEL")
        if level:
            self.log_level = level.upper()

        upload_dir = os.environ.get("CRUDFORGE_UPLOAD_DIR")
        if upload_dir:
            self.file_upload.upload_dir = upload_dir

    @property
    def upload_root(self) -> Path:
        """Absolute storage root for uploaded files."""
        root = Path(self.file_upload.upload_dir)
        if not root.is_absolute() and self.base_path is not None:
            root = self.base_path / root
        return root
