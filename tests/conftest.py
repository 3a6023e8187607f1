import os
import tempfile

# Settings are read once at import time; point them at a scratch directory and
# keep the background scheduler off before any project module is imported.
os.environ.setdefault("FINANCE_DATA_DIR", tempfile.mkdtemp(prefix="finance-tests-"))
os.environ.setdefault("FINANCE_TIMEZONE", "UTC")
os.environ["FINANCE_SCHEDULER_ENABLED"] = "false"
