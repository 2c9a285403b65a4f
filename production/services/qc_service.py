import logging
from typing import Dict, Any

from django.db import transaction
from django.utils import timezone

from production.models import QcCheck, ProductionBatch
from production.services.batch_service import ProductionBatchService
from stock.services.base_service import (
    BaseService, success_response, paginate_queryset, ValidationError,
)

logger = logging.getLogger(__name__)


class QcCheckService(BaseService):
    model = QcCheck

    @classmethod
    def serialize(cls, check: QcCheck) -> Dict[str, Any]:
        return ProductionBatchService.serialize_qc_check(check)

    @classmethod
    @transaction.atomic
    def record_check(cls, organization_id: int, batch_number: str,
                     check_type: str, result: str,
                     notes: str = "",
                     checked_by: str = "",
                     member_id: int = None) -> Dict[str, Any]:
        """
        Append a QC check and set the batch's QC outcome to its result.
        The batch's lifecycle state is left alone.
        """
        check_type = (check_type or "").strip().upper()
        result = (result or "").strip().upper()
        if check_type not in QcCheck.CheckType.values:
            raise ValidationError(
                f"Invalid check type: {check_type or '(empty)'}",
                field="check_type",
                details={"allowed": list(QcCheck.CheckType.values)},
            )
        if result not in ProductionBatch.QcOutcome.values:
            raise ValidationError(
                f"Invalid result: {result or '(empty)'}",
                field="result",
                details={"allowed": list(ProductionBatch.QcOutcome.values)},
            )

        batch = ProductionBatchService.get_by_number(organization_id, batch_number, lock=True)

        check = cls.model.objects.create(
            batch=batch,
            check_type=check_type,
            result=result,
            notes=notes or "",
            checked_by=checked_by or "",
            member_id=member_id,
        )

        batch.qc_outcome = result
        batch.qc_checked_at = timezone.now()
        batch.save(update_fields=["qc_outcome", "qc_checked_at", "updated_at"])

        logger.info("QC %s on %s: %s (lifecycle %s)",
                    check_type, batch.batch_number, result, batch.lifecycle_state)
        return success_response({
            "qc_check": cls.serialize(check),
            "batch": ProductionBatchService.serialize(batch),
        }, "QC check recorded")

    @classmethod
    def list(cls, organization_id: int,
             batch_number: str = None,
             result: str = None,
             check_type: str = None,
             page: int = 1,
             per_page: int = 50) -> Dict[str, Any]:
        queryset = cls.model.objects.select_related("batch").filter(
            batch__organization_id=organization_id
        )
        if batch_number:
            queryset = queryset.filter(batch__batch_number=batch_number)
        if result:
            queryset = queryset.filter(result=result.upper())
        if check_type:
            queryset = queryset.filter(check_type=check_type.upper())

        checks, pagination = paginate_queryset(queryset, page, per_page)
        return success_response({
            "qc_checks": [cls.serialize(c) for c in checks],
            "pagination": pagination
        })
