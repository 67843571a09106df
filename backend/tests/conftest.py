import os
import tempfile

# must run before the app (and its engine) is imported
_tmp = tempfile.mkdtemp(prefix="checkout-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{os.path.join(_tmp, 'test.db')}")
os.environ.setdefault("FINALIZE_LOCK_DIR", os.path.join(_tmp, "locks"))
os.environ.setdefault("PAYMENT_MOCK_DELAY_MS", "0")
os.environ.setdefault("CART_HYDRATION_GRACE_MS", "0")
