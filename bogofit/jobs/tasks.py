import logging
from datetime import datetime
from typing import Optional

from bogofit.jobs.celery_worker import celery_app
from bogofit.utils.image_workflow import generate_fitting_video
from bogofit.utils.redis import get_redis_client

logger = logging.getLogger(__name__)

VIDEO_TASK_TTL_SECONDS = 24 * 60 * 60


def video_task_key(task_id: str) -> str:
    return f"video_task:{task_id}"


def record_video_task(task_id: str, **fields) -> None:
    """Merge fields into the task's status hash."""
    redis_client = get_redis_client()
    key = video_task_key(task_id)
    mapping = {k: v for k, v in fields.items() if v is not None}
    mapping["updated_at"] = datetime.utcnow().isoformat()
    redis_client.hset(key, mapping=mapping)
    redis_client.expire(key, VIDEO_TASK_TTL_SECONDS)


def run_video_generation(
    task_id: str,
    image_url: str,
    prompt: Optional[str] = None,
    product_title: Optional[str] = None,
) -> dict:
    """
    Generate a fitting video and record progress in Redis.

    Generation failures are recorded on the task rather than retried: each
    attempt is a costly AI invocation.

    Returns:
        Dict with success flag and the generation data or error
    """
    logger.info(f"[run_video_generation] Started for task_id: {task_id}")
    record_video_task(task_id, status="processing")
    try:
        data = generate_fitting_video(image_url, prompt=prompt, product_title=product_title)
    except Exception as e:
        logger.error(f"[run_video_generation] ERROR for {task_id}: {e}")
        record_video_task(task_id, status="failed", error=str(e))
        return {"success": False, "task_id": task_id, "error": str(e)}

    record_video_task(
        task_id,
        status="completed",
        video_url=data["video_url"],
        original_url=data.get("original_url"),
    )
    logger.info(f"[run_video_generation] Completed for {task_id}")
    return {"success": True, "task_id": task_id, **data}


@celery_app.task(bind=True, name="generate_video_task")
def generate_video_task(
    self,
    task_id: str,
    image_url: str,
    prompt: Optional[str] = None,
    product_title: Optional[str] = None,
) -> dict:
    return run_video_generation(task_id, image_url, prompt=prompt, product_title=product_title)
