from enum import Enum


STORE_DIR = "store"
LINKS_DIR = "links"
CONTAINERS_DIR = "containers"
META_DIR = ".sfc"

CURRENT_FILE = "current"
HISTORY_FILE = "history.json"
SETTINGS_FILE = "workspace.toml"
STOW_PKGS_DIR = "stow-pkgs"
TOOLCHAINS_DIR = "toolchains"

# hashed in this order when present in a snapshot
HASHED_LOCKFILES = (
    "requirements.txt",
    "package-lock.json",
    "Cargo.lock",
    "rockspec.lock",
    "Gemfile.lock",
    "composer.lock",
    "pubspec.lock",
    "mix.lock",
)
HASHED_METADATA_FILES = (
    "sfc-metadata.toml",
    "container.toml",
    "toolchain.toml",
)

# the narrower set carried into temp snapshots and compared on promote/rollback
BRANCH_LOCKFILES = (
    "requirements.txt",
    "rockspec.lock",
    "Cargo.lock",
)

SEED_LOCKFILES = {
    "requirements.txt": b"# pinned python deps\n",
    "rockspec.lock": b"# pinned luarocks deps\n",
    "Cargo.lock": b"# pinned cargo lock placeholder\n",
    "package-lock.json": b'{\n  "name": "sfc-container",\n  "lockfileVersion": 2\n}\n',
}

TOOLCHAIN_MARKERS = {
    "node": "node_version",
    "npm": "npm_version",
    "rust": "rust_version",
}

GITIGNORE_LINES = (
    "store/",
    ".sfc/toolchains/",
    ".sfc/cache/",
    "**/target/",
    "**/.sfc-cache/",
    "**/.DS_Store",
)

NAME_PATTERN = r"^[A-Za-z0-9_-]+$"
MIN_PREFIX_LENGTH = 6
SHORT_HASH_LENGTH = 12
LOG_HASH_LENGTH = 8
LOG_LIMIT = 20
TEMP_SUFFIX_FORMAT = "%Y%m%d%H%M%S"
METADATA_VERSION = "0.1.0"


class SnapshotKind(str, Enum):
    NEW = "new"
    TEMP = "temp"
    RECREATED = "recreated"


def stable_alias(name: str) -> str:
    return f"{name}-stable"


def temp_alias_prefix(name: str) -> str:
    return f"{name}-temp-"
