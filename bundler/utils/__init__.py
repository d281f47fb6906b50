# Bundle builder utilities
from .logging import log, logWarning, logError, logDebug, init_logging, close_logging, print_summary, get_counts
from .guid import generate_guid, generate_cab_name
from .errors import BundleError, CorruptFileError, UnsupportedFormatError, BuildCancelled
