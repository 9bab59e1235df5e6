# Copyright (c) 2026 Mohammed Hassan. All rights reserved.
# Proprietary and confidential. Unauthorized copying, modification, distribution, or use is prohibited.

from .keys import DISABLED, query_keys
from .mutations import Mutations
from .queries import STALE_TIMES, Queries
from .store import QueryCache, QueryOptions, QueryState
