# Copyright (c) 2026 Mohammed Hassan. All rights reserved.
# Proprietary and confidential. Unauthorized copying, modification, distribution, or use is prohibited.

"""One-shot scripts run against the workflow engine's SQLite file.

Each module exposes ``main()`` and can be run with
``python -m socialflow.maintenance.<name>``.
"""
