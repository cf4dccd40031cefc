from .account import Account  # noqa: F401
from .project import ProjectPayment  # noqa: F401
