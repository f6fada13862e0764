from ._logging import (
    logger as logger,
)
from ._logging import (
    set_log_level as set_log_level,
)
from .simulation import generate_gmm_data as generate_gmm_data
