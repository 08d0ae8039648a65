from __future__ import annotations


class TopupError(ValueError):
    """业务错误。code 直接作为接口返回的 detail，status 是对应的 HTTP 状态码。"""

    code = "topup_error"
    status = 400

    def __init__(self, message: str | None = None, **context):
        super().__init__(message or self.code)
        self.context = context


# --- 参数校验（不开事务直接拒绝） ---

class InvalidPackage(TopupError):
    code = "invalid_package"


class InvalidQuantity(TopupError):
    code = "invalid_quantity"


class OrderTooLarge(TopupError):
    code = "order_too_large"


class InvalidStatus(TopupError):
    code = "invalid_status"


class InvalidAmount(TopupError):
    code = "invalid_amount"


class InvalidAction(TopupError):
    code = "invalid_action"


# --- 找不到 ---

class UserNotFound(TopupError):
    code = "user_not_found"
    status = 404


class OrderNotFound(TopupError):
    code = "order_not_found"
    status = 404


class RequestNotFound(TopupError):
    code = "request_not_found"
    status = 404


# --- 业务冲突（事务内校验失败，回滚） ---

class InsufficientPoints(TopupError):
    code = "insufficient_points"
    status = 402


class InvalidTransition(TopupError):
    code = "order_not_pending"
    status = 409


class DuplicatePendingRequest(TopupError):
    code = "pending_request_exists"
    status = 409


class TargetIsAdmin(TopupError):
    code = "target_is_admin"
    status = 409


# 账本内部错误，属于调用方 bug
class LedgerError(RuntimeError):
    pass
