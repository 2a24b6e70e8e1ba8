from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List


class CallbackAckResponse(BaseModel):
    success: bool = True
    message: str = "Callback received and processed"
    actionId: str
    storedForPolling: bool = True
    deliveredViaPush: bool = False


class CallbackMetadata(BaseModel):
    storedAt: str
    ageMs: int


class CheckCallbackResponse(BaseModel):
    success: bool = True
    data: Dict[str, Any]
    metadata: CallbackMetadata


class CallbackNotFoundResponse(BaseModel):
    success: bool = False
    message: str
    actionId: str
    availableActionIds: List[str]


class BulkCheckSummary(BaseModel):
    total: int
    found: int
    notFound: int
    foundActionIds: List[str]
    notFoundActionIds: List[str]


class BulkCheckResponse(BaseModel):
    success: bool = True
    results: Dict[str, Dict[str, Any]]
    summary: BulkCheckSummary


class TestCallbackRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    actionId: str | None = None
    address: str | None = None
    code: int | None = None
    id: int | None = None
    message: str | None = None
    transactionHash: str | None = None
    successful: bool | None = None

    def to_callback(self, now_ms: int) -> Dict[str, Any]:
        """Build a wallet-style callback, filling gaps with test values."""
        return {
            "actionId": self.actionId or f"test-{now_ms}",
            "address": self.address or "TTest123456789",
            "code": self.code or 0,
            "id": self.id or 1,
            "message": self.message or "success",
            "transactionHash": self.transactionHash or "test-tx-hash",
            "successful": self.successful if self.successful is not None else True,
        }


class TestCallbackResponse(BaseModel):
    success: bool = True
    message: str = "Test callback processed"
    testData: Dict[str, Any]
    storedForPolling: bool = True
    deliveredViaPush: bool = False
    activeConnections: List[str] = Field(default_factory=list)


class CleanupResponse(BaseModel):
    success: bool = True
    message: str = "Manual cleanup completed"
    cleaned: Dict[str, int]
