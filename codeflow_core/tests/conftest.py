import os
import tempfile

# 日志与存储在导入 codeflow_core 之前指向临时目录
_TMP = tempfile.mkdtemp(prefix="codeflow-tests-")
os.environ.setdefault("LOG_DIR", os.path.join(_TMP, "logs"))
os.environ.setdefault("STORAGE_ROOT", os.path.join(_TMP, ".storage"))
