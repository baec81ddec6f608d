"""
FastAPI HTTP 服务 - 提供 AMI 检查与修复接口

启动方式：
    uvicorn amidoctor.api:app --host 127.0.0.1 --port 8000

API 文档：
    http://localhost:8000/docs
"""
from datetime import datetime
from functools import lru_cache
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query
from pydantic import BaseModel, Field

from . import __version__
from .diagnostics.workflows import BACKUP_TARGETS, AmiWorkflows, build_workflows
from .errors import AmiDoctorError
from .settings import load_settings

# 创建 FastAPI 应用
app = FastAPI(
    title="amidoctor API",
    description="Asterisk AMI 配置修复与诊断 API",
    version=__version__
)


@lru_cache()
def get_workflows() -> AmiWorkflows:
    """工作流依赖，测试中通过 app.dependency_overrides 替换"""
    return build_workflows(load_settings())


# 请求模型
class FixRequest(BaseModel):
    """修复请求"""
    reload: bool = Field(default=True, description="修改配置后是否重新加载 Asterisk")
    username: Optional[str] = Field(None, description="AMI 用户名，默认使用 manager.conf 中第一个用户")
    secret: Optional[str] = Field(None, description="修复时写入的 secret", min_length=1)


class TestRequest(BaseModel):
    """登录测试请求，未指定的字段从 .env / manager.conf 读取"""
    host: Optional[str] = Field(None, description="AMI 地址")
    port: Optional[int] = Field(None, description="AMI 端口", gt=0, lt=65536)
    username: Optional[str] = Field(None, description="AMI 用户名")
    secret: Optional[str] = Field(None, description="AMI secret", min_length=1)


# 响应模型
class StepModel(BaseModel):
    step_number: int
    step_name: str
    success: bool
    message: str = ""
    fix_applied: bool = False
    error_code: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class OutcomeResponse(BaseModel):
    """诊断结果"""
    status: str = Field(..., description="Ok | Fixed | Failed")
    steps: List[StepModel]
    failing_step: Optional[str] = None
    cause: str = ""
    error_code: Optional[str] = None
    username: Optional[str] = None
    masked_secret: Optional[str] = None
    total_time: float
    created_at: str


class ProtocolResponse(BaseModel):
    """登录测试结果"""
    status: str = Field(..., description="Authenticated | AuthFailed | Unreachable | Timeout")
    raw_response: str = ""
    host: str
    port: int
    username: str
    elapsed: float
    detail: str = ""
    protocol_version: Optional[str] = None


class BackupModel(BaseModel):
    source_path: str
    snapshot_path: str
    checksum: str
    timestamp: str


@app.get("/health")
async def health_check():
    """健康检查"""
    return {
        "status": "healthy",
        "version": __version__,
        "timestamp": datetime.now().isoformat()
    }


@app.get("/api/v1/ami/check", response_model=OutcomeResponse)
async def check(
    username: Optional[str] = Query(None, description="AMI 用户名"),
    workflows: AmiWorkflows = Depends(get_workflows)
):
    """只读检查"""
    outcome = await workflows.check(username=username)
    return outcome.to_dict()


@app.post("/api/v1/ami/fix", response_model=OutcomeResponse)
async def fix(request: FixRequest, workflows: AmiWorkflows = Depends(get_workflows)):
    """检查并自动修复"""
    outcome = await workflows.fix(reload=request.reload, username=request.username, secret=request.secret)
    return outcome.to_dict()


@app.post("/api/v1/ami/test", response_model=ProtocolResponse)
async def test_login(request: TestRequest, workflows: AmiWorkflows = Depends(get_workflows)):
    """测试 AMI 登录"""
    try:
        result = await workflows.test(
            host=request.host, port=request.port, username=request.username, secret=request.secret
        )
    except AmiDoctorError as e:
        raise HTTPException(status_code=404, detail={"code": e.code, "message": str(e)})
    return result.to_dict()


@app.get("/api/v1/ami/diag")
async def diag(workflows: AmiWorkflows = Depends(get_workflows)):
    """诊断信息快照"""
    return await workflows.diag()


@app.get("/api/v1/backups", response_model=List[BackupModel])
async def list_backups(
    target: str = Query("manager", description="manager 或 env"),
    workflows: AmiWorkflows = Depends(get_workflows)
):
    """列出快照（最新的在前）"""
    if target not in BACKUP_TARGETS:
        raise HTTPException(status_code=400, detail=f"未知的备份目标: {target}")
    return [handle.to_dict() for handle in workflows.backup_list(target)]


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="127.0.0.1", port=8000)
