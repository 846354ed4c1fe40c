from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from shared.core.auth import allow_admin
from shared.core.database import get_rental_db as get_db
from shared.helpers.json_response_helper import success_response
from shared.utils.app_status_code import AppStatusCode
from ...clients.messaging import ConversationChannel, get_conversation_channel
from ...crud.notifications.notification_crud import dispatch_pending_notifications
from ...crud.scheduler.reminder_service import process_rental_reminders
from ...crud.scheduler.scheduler_service import run_lifecycle_sweep

router = APIRouter(
    prefix="/api/scheduler",
    tags=["scheduler"],
    dependencies=[Depends(allow_admin)]
)


@router.post("/lifecycle-sweep")
def lifecycle_sweep(
    db: Session = Depends(get_db),
    channel: ConversationChannel = Depends(get_conversation_channel)):
    result = run_lifecycle_sweep(db, channel)
    return success_response(
        data=result,
        message="Lifecycle sweep completed",
        status_code=AppStatusCode.OPERATION_SUCCESSFUL
    )


@router.post("/reminder-sweep")
def reminder_sweep(
    db: Session = Depends(get_db),
    channel: ConversationChannel = Depends(get_conversation_channel)):
    result = process_rental_reminders(db)
    result["notifications"] = dispatch_pending_notifications(db, channel)
    return success_response(
        data=result,
        message="Reminder sweep completed",
        status_code=AppStatusCode.OPERATION_SUCCESSFUL
    )
