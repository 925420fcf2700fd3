__title__ = 'commandeer'
__license__ = 'MIT'
__version__ = "0.1.0"

from .faults import *
from .tokens import *
from .parsers import *
from .metadata import *
from .context import *
from .helper import *
from .apis import *
from .config import *
from .dispatch import *

VersionInfo = __import__("collections").namedtuple("VersionInfo", (
    "major",
    "minor",
    "micro",
    "releaselevel",
    "serial",
))

version_info = VersionInfo(0, 1, 0, "final", 0)

__all__ = (
    "__title__",
    "__license__",
    "__version__",
    "version_info",
)

__all__ += faults.__all__  # type: ignore[name-defined]
__all__ += tokens.__all__  # type: ignore[name-defined]
__all__ += parsers.__all__  # type: ignore[name-defined]
__all__ += metadata.__all__  # type: ignore[name-defined]
__all__ += context.__all__  # type: ignore[name-defined]
__all__ += helper.__all__  # type: ignore[name-defined]
__all__ += apis.__all__  # type: ignore[name-defined]
__all__ += config.__all__  # type: ignore[name-defined]
__all__ += dispatch.__all__  # type: ignore[name-defined]
