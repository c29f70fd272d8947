"""跨越核心边界的两类错误。"""

from __future__ import annotations


class NotFoundError(KeyError):
    """引用的 layer/node/branch/script 不存在，调用方可修正。"""

    def __init__(self, kind: str, entity_id: str):
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"{kind.capitalize()} not found: {kind}_id={entity_id}")

    def __str__(self) -> str:
        return str(self.args[0])


class PersistenceFailure(RuntimeError):
    """后端存储调用失败；仅在手动保存等需要等待结果的路径上抛出。"""

    def __init__(self, script_id: str, operation: str, cause: BaseException):
        self.script_id = script_id
        self.operation = operation
        self.cause = cause
        super().__init__(
            f"Persistence failed: script_id={script_id} operation={operation} "
            f"error={cause}"
        )
