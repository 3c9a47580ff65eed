"""
异常定义

PumpPanda 只有一类硬错误：组件在 initialize() 完成之前被调用。
其他情况（数据缺失、风控拒绝、快照读写失败）都以返回值或日志的形式处理。
"""


class NotInitializedError(RuntimeError):
    """组件未初始化就被调用"""

    def __init__(self, component: str):
        super().__init__(f"{component} not initialized")
        self.component = component


def ensure_initialized(initialized: bool, component: str) -> None:
    """未初始化时抛出 NotInitializedError"""
    if not initialized:
        raise NotInitializedError(component)


__all__ = ["NotInitializedError", "ensure_initialized"]
