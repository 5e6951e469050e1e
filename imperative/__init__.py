__title__ = 'imperative'
__license__ = 'MIT'
# Placeholder, modified by dynamic-versioning.
__version__ = "0.0.0"

from .arguments import *
from .commands import *
from .config import *
from .faults import *
from .mapping import *
from .processor import *
from .profiles import *
from .response import *
from .syntax import *

VersionInfo = __import__("collections").namedtuple("VersionInfo", (
    "major",
    "minor",
    "micro",
    "releaselevel",
    "serial",
    "metadata"
))

# Placeholder, modified by dynamic-versioning.
version_info = VersionInfo(0, 0, 0, "final", 0, "")

__all__ = (
    "__title__",
    "__license__",
    "__version__",
    "version_info"
)

# Load the exposed API of the definitions
__all__ += arguments.__all__  # type: ignore[attr-defined]
__all__ += commands.__all__  # type: ignore[attr-defined]
__all__ += profiles.__all__  # type: ignore[attr-defined]
# Load the exposed API of the runtime
__all__ += config.__all__  # type: ignore[attr-defined]
__all__ += mapping.__all__  # type: ignore[attr-defined]
__all__ += syntax.__all__  # type: ignore[attr-defined]
__all__ += processor.__all__  # type: ignore[attr-defined]
__all__ += response.__all__  # type: ignore[attr-defined]
# Load the exposed API of the faults
__all__ += faults.__all__  # type: ignore[attr-defined]
