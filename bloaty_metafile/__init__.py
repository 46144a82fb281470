"""Convert bloaty size tables into esbuild metafiles."""

from .errors import (
    BloatyMetafileError,
    ConfigError,
    DepthBoundError,
    InputFormatError,
    ManifestParseError,
    SerializationError,
)
from .metafile import to_metafile, validate, write_metafile
from .packages import PackageNode, Packages, load_packages, parse_lock
from .records import SizeRecord, read_records
from .symbols import demangle, resolve
from .tree import SizeTree, TreeNode, build_tree, limit_depth

__version__ = "0.1.0"
