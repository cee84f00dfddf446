"""
Command-line interface for A11yAudit
"""
import asyncio
import json
import signal

import click

from core.config import get_settings, settings
from core.exceptions import A11yAuditError, ConfigurationError
from core.logging import get_logger

logger = get_logger(__name__)


def _echo_json(data) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


def _run(coro):
    """Run a command coroutine, turning domain errors into a clean exit"""
    try:
        return asyncio.run(coro)
    except A11yAuditError as e:
        click.echo(f"✗ {e.message}", err=True)
        raise SystemExit(1)


def _require_shared(*backends: str) -> None:
    """Commands that talk to other processes cannot use in-memory backends"""
    current = get_settings()
    in_memory = [name for name in backends if getattr(current, f"{name}_backend") == "memory"]
    if in_memory:
        names = " and ".join(f"{name.upper()}_BACKEND" for name in in_memory)
        raise ConfigurationError(
            f"In-memory {'/'.join(in_memory)} does not outlive this command; set {names}=redis",
            setting=f"{in_memory[0]}_backend",
        )


@click.group()
@click.version_option(version=settings.app_version)
def cli():
    """A11yAudit CLI - WCAG accessibility audits for web pages"""
    pass


@cli.command()
@click.argument("url")
@click.option("--skip-semantic", is_flag=True, help="Only run the axe-core rule engine")
@click.option("--full", is_flag=True, help="Print every violation, not just the summary")
def audit(url: str, skip_semantic: bool, full: bool):
    """Audit one page inline, without the queue"""
    from batch_runner.pipeline import AuditPipeline
    from d3_assessment.schemas import AuditOptions

    async def run_audit():
        pipeline = AuditPipeline.from_settings()
        await pipeline.start()
        try:
            outcome = await pipeline.run(url, AuditOptions(skip_semantic_check=skip_semantic))
        finally:
            await pipeline.close()

        if full:
            _echo_json(outcome.report.to_dict())
        else:
            _echo_json(outcome.summary.to_dict())
        if outcome.semantic.degraded:
            click.echo(f"! Semantic check degraded: {outcome.semantic.error}", err=True)

    _run(run_audit())


@cli.command()
@click.argument("urls", nargs=-1, required=True)
@click.option("--skip-semantic", is_flag=True, help="Skip the semantic check")
@click.option(
    "--priority",
    type=click.Choice(["high", "normal", "low"]),
    default="normal",
    help="Queue priority",
)
@click.option("--callback-url", default=None, help="URL to notify on completion")
def submit(urls, skip_semantic: bool, priority: str, callback_url: str):
    """Queue one or more URLs for auditing"""
    from batch_runner.dispatcher import JobDispatcher
    from infra.factory import create_queue, create_report_store

    options = {
        "skip_semantic_check": skip_semantic,
        "priority": priority,
        "callback_url": callback_url,
    }

    async def run_submit():
        _require_shared("queue", "store")
        queue, store = create_queue(), create_report_store()
        try:
            dispatcher = JobDispatcher(queue, store)
            if len(urls) == 1:
                job_ids = [await dispatcher.submit_audit(urls[0], options)]
            else:
                job_ids = await dispatcher.submit_batch(list(urls), options)
        finally:
            await queue.close()
            await store.close()

        for job_id in job_ids:
            click.echo(job_id)

    _run(run_submit())


@cli.command()
@click.argument("job_id")
def report(job_id: str):
    """Show the stored record for a job"""
    from infra.factory import create_report_store

    async def run_report():
        _require_shared("store")
        store = create_report_store()
        try:
            record = await store.get(job_id)
        finally:
            await store.close()

        if record is None:
            click.echo(f"✗ No report found for {job_id}", err=True)
            raise SystemExit(1)
        _echo_json(record.model_dump(mode="json", exclude={"screenshot"}))

    _run(run_report())


@cli.command()
@click.option("--limit", default=20, help="Maximum records to list")
@click.option("--url", default=None, help="Only show audits of this URL")
def history(limit: int, url: str):
    """List recent audits, newest first"""
    from infra.factory import create_report_store

    async def run_history():
        _require_shared("store")
        store = create_report_store()
        try:
            if url:
                records = await store.query_by_url(url, limit)
            else:
                records = await store.scan_recent(limit)
        finally:
            await store.close()

        for record in records:
            score = "-" if record.compliance_score is None else record.compliance_score
            click.echo(f"{record.job_id}  {record.status.value:<9}  {score!s:>5}  {record.url}")

    _run(run_history())


@cli.command()
@click.option("--pool-size", type=int, default=None, help="Concurrent workers (default: WORKER_POOL_SIZE)")
@click.option("--once", is_flag=True, help="Process a single batch and exit")
def worker(pool_size: int, once: bool):
    """Consume audit jobs from the queue"""
    from batch_runner.callbacks import CallbackNotifier
    from batch_runner.pipeline import AuditPipeline
    from batch_runner.worker import AuditWorker, WorkerPool
    from infra.factory import create_queue, create_report_store

    async def run_worker():
        _require_shared("queue", "store")
        queue, store = create_queue(), create_report_store()
        pipeline = AuditPipeline.from_settings()
        notifier = CallbackNotifier()

        try:
            if once:
                single = AuditWorker(queue, store, pipeline, notifier=notifier)
                try:
                    result = await single.run_once()
                finally:
                    await single.close()
                    await notifier.aclose()
                _echo_json(result.batch_item_failures())
                return

            pool = WorkerPool(queue, store, pipeline, size=pool_size, notifier=notifier)
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, pool.stop)

            click.echo(f"Starting {pool.size} workers on queue '{queue.queue_name}'")
            await pool.run_until_stopped()
        finally:
            await queue.close()
            await store.close()

    _run(run_worker())


@cli.command("queue-stats")
@click.option("--dead-letters", is_flag=True, help="Also list dead-lettered messages")
def queue_stats(dead_letters: bool):
    """Show queue depth and dead-letter count"""
    from infra.factory import create_queue

    async def run_stats():
        _require_shared("queue")
        queue = create_queue()
        try:
            stats = await queue.stats()
            entries = await queue.dead_letters() if dead_letters else []
        finally:
            await queue.close()

        _echo_json(stats.model_dump())
        for entry in entries:
            click.echo(f"{entry.message_id}  deliveries={entry.delivery_count}  at={entry.dead_lettered_at.isoformat()}")

    _run(run_stats())


@cli.command()
@click.argument("message_id")
def requeue(message_id: str):
    """Move a dead-lettered message back onto the queue"""
    from infra.factory import create_queue

    async def run_requeue():
        _require_shared("queue")
        queue = create_queue()
        try:
            await queue.requeue_dead_letter(message_id)
        finally:
            await queue.close()
        click.echo(f"✓ Requeued {message_id}")

    _run(run_requeue())


@cli.command()
def env_info():
    """Display environment information"""
    click.echo(f"A11yAudit v{settings.app_version}")
    click.echo(f"Environment: {settings.environment}")
    click.echo(f"Queue backend: {settings.queue_backend} ({settings.queue_name})")
    click.echo(f"Store backend: {settings.store_backend}")
    click.echo(f"Workers: {settings.worker_pool_size}")
    click.echo(f"Semantic check: {'enabled' if settings.semantic_check_enabled else 'disabled'}")
    click.echo(f"Proxies: {len(settings.proxies)}")


def main():
    """Main entry point"""
    cli()


if __name__ == "__main__":
    main()
