"""认证接口。

路由均为同步函数，由 FastAPI 放入线程池执行，口令哈希不会阻塞事件循环。
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status

from gatehouse_api.core.config import Settings
from gatehouse_api.core.security import utc_now
from gatehouse_api.dependencies import (
    ClientInfo,
    get_app_settings,
    get_auth_service,
    get_bearer_token,
    get_client_info,
    get_current_session,
)
from gatehouse_api.schemas.auth import (
    AuditEntryData,
    AuthLoginData,
    AuthLoginRequest,
    AuthLogoutData,
    AuthMeData,
    AuthRegisterData,
    AuthRegisterRequest,
    ChangePasswordData,
    ChangePasswordRequest,
    ForgotPasswordData,
    ForgotPasswordRequest,
    ResetPasswordData,
    ResetPasswordRequest,
    SessionData,
    SessionRevokeData,
    UserData,
    VerifyEmailData,
    VerifyEmailRequest,
)
from gatehouse_api.schemas.common import ErrorResponse, SuccessResponse
from gatehouse_api.services.auth import AuthenticatedSession, AuthService
from gatehouse_api.stores.audit import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from gatehouse_api.utils.response import page_meta, success

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post(
    "/register",
    summary="注册账号",
    description="创建启用但未验证邮箱的账号，邮箱与用户名均需全局唯一。",
    status_code=status.HTTP_201_CREATED,
    response_model=SuccessResponse[AuthRegisterData],
    responses={409: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
def register(
    payload: AuthRegisterRequest,
    request: Request,
    service: AuthService = Depends(get_auth_service),
    client: ClientInfo = Depends(get_client_info),
    settings: Settings = Depends(get_app_settings),
):
    """注册账号。"""
    user = service.register(
        payload.username,
        payload.email,
        payload.password,
        payload.first_name,
        payload.last_name,
        ip_address=client.ip_address,
        user_agent=client.user_agent,
    )
    # 验证邮件由外部通道投递，仅调试模式回显令牌便于联调。
    data = AuthRegisterData(
        user=UserData.model_validate(user),
        email_verification_token=user.email_verification_token if settings.app_debug else None,
    )
    return success(request, data)


@router.post(
    "/login",
    summary="登录",
    description="使用邮箱或用户名登录，成功后返回不透明会话令牌。连续失败达到阈值后账号被临时锁定。",
    response_model=SuccessResponse[AuthLoginData],
    responses={401: {"model": ErrorResponse}, 423: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
def login(
    payload: AuthLoginRequest,
    request: Request,
    service: AuthService = Depends(get_auth_service),
    client: ClientInfo = Depends(get_client_info),
):
    """登录。"""
    session = service.login(
        payload.identifier,
        payload.password,
        ip_address=client.ip_address,
        user_agent=client.user_agent,
    )
    expires_in = max(0, int((session.expires_at - utc_now()).total_seconds()))
    data = AuthLoginData(
        access_token=session.token,
        session_id=session.session_id,
        user_id=session.user_id,
        expires_at=session.expires_at,
        expires_in=expires_in,
    )
    return success(request, data)


@router.post(
    "/logout",
    summary="登出",
    description="使当前会话令牌失效，重复登出不会报错。",
    response_model=SuccessResponse[AuthLogoutData],
    responses={401: {"model": ErrorResponse}},
)
def logout(
    request: Request,
    token: str = Depends(get_bearer_token),
    service: AuthService = Depends(get_auth_service),
    client: ClientInfo = Depends(get_client_info),
):
    """登出。"""
    service.logout(token, ip_address=client.ip_address, user_agent=client.user_agent)
    return success(request, AuthLogoutData(logged_out=True))


@router.get(
    "/me",
    summary="当前用户",
    response_model=SuccessResponse[AuthMeData],
    responses={401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def me(request: Request, current: AuthenticatedSession = Depends(get_current_session)):
    data = AuthMeData(
        user=UserData.model_validate(current.user),
        session_id=current.session.session_id,
        session_expires_at=current.session.expires_at,
    )
    return success(request, data)


@router.post(
    "/verify-email",
    summary="验证邮箱",
    response_model=SuccessResponse[VerifyEmailData],
    responses={401: {"model": ErrorResponse}},
)
def verify_email(
    payload: VerifyEmailRequest,
    request: Request,
    service: AuthService = Depends(get_auth_service),
    client: ClientInfo = Depends(get_client_info),
):
    user_id = service.verify_email(payload.token, ip_address=client.ip_address, user_agent=client.user_agent)
    return success(request, VerifyEmailData(user_id=user_id))


@router.post(
    "/forgot-password",
    summary="找回密码",
    description="无论邮箱是否存在都返回 accepted，避免暴露账号是否注册。",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=SuccessResponse[ForgotPasswordData],
)
def forgot_password(
    payload: ForgotPasswordRequest,
    request: Request,
    service: AuthService = Depends(get_auth_service),
    client: ClientInfo = Depends(get_client_info),
    settings: Settings = Depends(get_app_settings),
):
    token = service.forgot_password(payload.email, ip_address=client.ip_address, user_agent=client.user_agent)
    data = ForgotPasswordData(accepted=True, reset_token=token if settings.app_debug else None)
    return success(request, data)


@router.post(
    "/reset-password",
    summary="重置密码",
    description="凭重置令牌设置新密码，同时解除锁定并吊销该账号全部会话。",
    response_model=SuccessResponse[ResetPasswordData],
    responses={401: {"model": ErrorResponse}},
)
def reset_password(
    payload: ResetPasswordRequest,
    request: Request,
    service: AuthService = Depends(get_auth_service),
    client: ClientInfo = Depends(get_client_info),
):
    service.reset_password(
        payload.token,
        payload.new_password,
        ip_address=client.ip_address,
        user_agent=client.user_agent,
    )
    return success(request, ResetPasswordData())


@router.post(
    "/change-password",
    summary="修改密码",
    description="校验当前密码后修改，保留当前会话并吊销其它会话。",
    response_model=SuccessResponse[ChangePasswordData],
    responses={401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def change_password(
    payload: ChangePasswordRequest,
    request: Request,
    current: AuthenticatedSession = Depends(get_current_session),
    service: AuthService = Depends(get_auth_service),
    client: ClientInfo = Depends(get_client_info),
):
    service.change_password(
        current.user.user_id,
        payload.current_password,
        payload.new_password,
        current_session_id=current.session.session_id,
        ip_address=client.ip_address,
        user_agent=client.user_agent,
    )
    return success(request, ChangePasswordData())


@router.get(
    "/sessions",
    summary="会话列表",
    description="列出当前用户全部会话（含已失效），最近创建的在前。",
    response_model=SuccessResponse[list[SessionData]],
    responses={401: {"model": ErrorResponse}},
)
def list_sessions(
    request: Request,
    current: AuthenticatedSession = Depends(get_current_session),
    service: AuthService = Depends(get_auth_service),
):
    current_id = current.session.session_id
    data = [
        SessionData.model_validate(item).model_copy(update={"is_current": item.session_id == current_id})
        for item in service.list_sessions(current.user.user_id)
    ]
    return success(request, data)


@router.delete(
    "/sessions/{session_id}",
    summary="吊销会话",
    description="只能吊销当前用户自己的会话。",
    response_model=SuccessResponse[SessionRevokeData],
    responses={401: {"model": ErrorResponse}},
)
def revoke_session(
    session_id: UUID,
    request: Request,
    current: AuthenticatedSession = Depends(get_current_session),
    service: AuthService = Depends(get_auth_service),
    client: ClientInfo = Depends(get_client_info),
):
    service.revoke_session(
        current.user.user_id,
        session_id,
        ip_address=client.ip_address,
        user_agent=client.user_agent,
    )
    return success(request, SessionRevokeData(session_id=session_id))


@router.get(
    "/audit",
    summary="安全审计记录",
    description="按时间倒序分页查询当前用户的安全事件。",
    response_model=SuccessResponse[list[AuditEntryData]],
    responses={401: {"model": ErrorResponse}},
)
def audit_trail(
    request: Request,
    limit: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE, description="返回上限。"),
    offset: int = Query(default=0, ge=0, description="起始偏移量。"),
    current: AuthenticatedSession = Depends(get_current_session),
    service: AuthService = Depends(get_auth_service),
):
    entries = service.audit_trail(current.user.user_id, limit=limit, offset=offset)
    data = [AuditEntryData.model_validate(entry) for entry in entries]
    return success(request, data, meta=page_meta(limit=limit, offset=offset, count=len(data)))
