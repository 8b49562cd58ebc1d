"""
Record Tiering DAG

Moves aged records from the hot tier (Redis) to the cold tier (MinIO) and then
removes the verified hot copies.

Schedule: Daily at 3AM UTC
Operations:
1. health_checks: test_redis_health, test_postgres_health, test_minio_health (parallel)
2. Archival - copy records older than ARCHIVE_CUTOFF_DAYS to MinIO, mark ARCHIVED
3. Cleanup - verify cold copies, delete hot payloads, mark DELETED

Both tasks are idempotent; a failed run resumes from the last committed state.
"""

from airflow import DAG
from airflow.operators.python import PythonOperator
from airflow.utils.task_group import TaskGroup
from datetime import datetime, timedelta
import sys

# Add parent directory to path so 'from src.xxx' imports work
sys.path.insert(0, '/opt/airflow')

from src.storage.factory import build_services
from src.storage.minio import check_minio_health
from src.storage.postgres import check_postgres_health
from src.storage.redis import check_redis_health
from src.tiering.worker import TieringWorker
from src.utils.config import Config
from src.utils.logging import get_logger

logger = get_logger(__name__)

# Connection settings for the health checks, read when the DAG is parsed
config = Config.from_env()

default_args = {
    'owner': 'data-engineering',
    'retries': 1,
    'retry_delay': timedelta(minutes=10),
    'depends_on_past': False,
    'email_on_failure': False,
    'email_on_retry': False,
}


def _build_worker():
    config = Config.from_env()
    services = build_services(config)
    worker = TieringWorker(
        services.archival,
        services.cleanup,
        cutoff_age=services.cutoff_age,
        status_client=services.redis_client,
    )
    return services, worker


def run_archival(**context):
    """Run one archival cycle and push its summary to XCom."""
    logger.info("Starting archival cycle...")
    services, worker = _build_worker()
    try:
        result = worker.run_archival()
    finally:
        services.close()

    context['ti'].xcom_push(key='archival_result', value=result.to_dict())

    # Per-record failures are dead-lettered and retried on the next run;
    # they do not fail the task, so cleanup still runs for what did migrate.
    if result.failed:
        logger.warning(f"Archival finished with {result.failed} dead-lettered record(s)")
    return result.migrated


def run_cleanup(**context):
    """Run one cleanup cycle and push its summary to XCom."""
    logger.info("Starting cleanup cycle...")
    services, worker = _build_worker()
    try:
        result = worker.run_cleanup()
    finally:
        services.close()

    context['ti'].xcom_push(key='cleanup_result', value=result.to_dict())

    if result.failed:
        logger.warning(f"Cleanup finished with {result.failed} dead-lettered record(s)")
    return result.deleted


with DAG(
    dag_id='record_tiering_dag',
    default_args=default_args,
    description='Archive aged records to the cold tier and clean up hot copies',
    schedule_interval='0 3 * * *',  # Run daily at 3AM UTC
    start_date=datetime(2024, 1, 1),
    catchup=False,
    max_active_runs=1,  # Prevent overlapping cycles
    tags=['tiering', 'archival', 'cleanup'],
) as dag:

    with TaskGroup("health_checks") as health_checks:
        test_redis_health = PythonOperator(
            task_id='test_redis_health',
            python_callable=check_redis_health,
            op_kwargs={
                'host': config.redis.host,
                'port': config.redis.port,
                'db': config.redis.db,
                'max_retries': 3,
            },
        )

        test_postgres_health = PythonOperator(
            task_id='test_postgres_health',
            python_callable=check_postgres_health,
            op_kwargs={
                'host': config.postgres.host,
                'port': config.postgres.port,
                'user': config.postgres.user,
                'password': config.postgres.password,
                'database': config.postgres.database,
                'max_retries': 3,
            },
        )

        test_minio_health = PythonOperator(
            task_id='test_minio_health',
            python_callable=check_minio_health,
            op_kwargs={
                'endpoint': config.minio.endpoint,
                'access_key': config.minio.access_key,
                'secret_key': config.minio.secret_key,
                'bucket': config.minio.bucket,
                'secure': config.minio.secure,
                'max_retries': 3,
            },
        )

    archival_task = PythonOperator(
        task_id='run_archival',
        python_callable=run_archival,
    )

    cleanup_task = PythonOperator(
        task_id='run_cleanup',
        python_callable=run_cleanup,
    )

    health_checks >> archival_task >> cleanup_task
