"""Mock payment gateway."""
import uuid
from collections.abc import Iterable, Mapping, Sequence
from typing import Optional, Union

from storefront.checkout.models.payment import (
    PaymentChannel,
    PaymentMethods,
    PaymentStatus,
    PaymentStatusSnapshot,
)
from storefront.checkout.payment.base import (
    CancelPaymentRequest,
    CheckoutCancelError,
    CreateInvoiceRequest,
    InvoiceCreated,
    InvoiceResult,
    PaymentGateway,
    StatusFetched,
    StatusResult,
)

ScriptedStatus = Union[StatusResult, PaymentStatusSnapshot, Exception]
"""A scripted status response. Exceptions are raised."""

DEFAULT_METHODS: PaymentMethods = {
    "virtual_account": [PaymentChannel(code="BCA", name="BCA Virtual Account")],
    "ewallet": [
        PaymentChannel(
            code="OVO", name="OVO", fee_type="percentage", fee_value=1.5
        )
    ],
}


class MockPaymentGateway(PaymentGateway):
    """Mock payment gateway that replays scripted responses.

    Status responses are consumed in order per tracking ID; the last one repeats.
    Tracking IDs with no script get ``queued`` snapshots.
    """

    def __init__(
        self,
        methods: Optional[PaymentMethods] = None,
        invoice_results: Iterable[Union[InvoiceResult, Exception]] = (),
        statuses: Optional[Mapping[str, Sequence[ScriptedStatus]]] = None,
    ):
        self.methods = methods if methods is not None else DEFAULT_METHODS
        self.invoice_results = list(invoice_results)
        self.statuses = {k: list(v) for k, v in (statuses or {}).items()}
        self.invoice_requests: list[CreateInvoiceRequest] = []
        self.status_requests: list[str] = []
        self.cancel_requests: list[CancelPaymentRequest] = []
        self.canceled: set[str] = set()

    async def get_payment_methods(self) -> PaymentMethods:
        return self.methods

    async def create_invoice(self, request: CreateInvoiceRequest) -> InvoiceResult:
        self.invoice_requests.append(request)
        if self.invoice_results:
            result = self.invoice_results.pop(0)
            if isinstance(result, Exception):
                raise result
            return result
        return InvoiceCreated(str(uuid.uuid4()))

    async def get_payment_status(self, tracking_id: str) -> StatusResult:
        self.status_requests.append(tracking_id)
        script = self.statuses.get(tracking_id)
        if not script:
            queued = PaymentStatusSnapshot(status=PaymentStatus.queued.value)
            return StatusFetched(queued)

        result = script.pop(0) if len(script) > 1 else script[0]
        if isinstance(result, Exception):
            raise result
        elif isinstance(result, PaymentStatusSnapshot):
            return StatusFetched(result)
        return result

    async def cancel_payment(self, request: CancelPaymentRequest):
        self.cancel_requests.append(request)
        if request.reference_id in self.canceled:
            raise CheckoutCancelError("Payment is already canceled")
        self.canceled.add(request.reference_id)
