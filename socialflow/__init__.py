# Copyright (c) 2026 Mohammed Hassan. All rights reserved.
# Proprietary and confidential. Unauthorized copying, modification, distribution, or use is prohibited.

"""Operations dashboard for SocialFlow content batches."""

__version__ = "1.0.0"
