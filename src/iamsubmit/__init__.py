from importlib.metadata import version as _version

from iamsubmit._io import *  # noqa: F401, F403
from iamsubmit.aggregate import aggregate_children  # noqa: F401
from iamsubmit.check import MismatchRecord, Status, check_summations  # noqa: F401
from iamsubmit.data import ScenarioPoint, as_table  # noqa: F401
from iamsubmit.errors import *  # noqa: F401, F403
from iamsubmit.reference import check_fixed_on_reference  # noqa: F401
from iamsubmit.report import ReportDestination, ReportOptions, emit  # noqa: F401
from iamsubmit.rules import *  # noqa: F401, F403
from iamsubmit.submission import generate_submission  # noqa: F401
from iamsubmit.utils import *  # noqa: F401, F403


try:
    __version__ = _version("iamsubmit")
except Exception:
    # Local copy or not installed with setuptools.
    __version__ = "999"
