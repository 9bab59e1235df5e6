# Copyright (c) 2026 Mohammed Hassan. All rights reserved.
# Proprietary and confidential. Unauthorized copying, modification, distribution, or use is prohibited.

from .client import WebhookClient, encode_route, validate_id, validate_slug
from .errors import ApiError, NetworkError, SocialFlowError, ValidationError, sanitize_error_message
