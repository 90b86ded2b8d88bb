from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping, Optional

from tqdm import tqdm

from dynamo_provisioner.services.config import FailurePolicy, ProvisioningConfig
from dynamo_provisioner.services.table_model import TableCapability, TableOptions


logger = logging.getLogger(__name__)


class ProvisioningError(RuntimeError):
    """A model's provisioning failed. The underlying failure is chained as __cause__."""

    def __init__(self, message: str, *, model_name: str, table_name: str) -> None:
        super().__init__(message)
        self.model_name = model_name
        self.table_name = table_name


class DescribeError(ProvisioningError):
    pass


class CreateError(ProvisioningError):
    pass


class PollError(ProvisioningError):
    pass


class PollTimeoutError(PollError):
    pass


class ProvisioningState(str, Enum):
    START = "START"
    CREATING_REMOTE = "CREATING_REMOTE"
    WAITING_ACTIVE = "WAITING_ACTIVE"
    DONE = "DONE"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (ProvisioningState.DONE, ProvisioningState.FAILED)


_FORWARD = {
    ProvisioningState.START: {ProvisioningState.CREATING_REMOTE, ProvisioningState.DONE},
    ProvisioningState.CREATING_REMOTE: {ProvisioningState.WAITING_ACTIVE},
    ProvisioningState.WAITING_ACTIVE: {ProvisioningState.DONE},
}


@dataclass
class ProvisioningTask:
    """One model's unit of provisioning work for a single provision_all call."""

    model_name: str
    model: TableCapability
    options: TableOptions = field(default_factory=TableOptions)
    state: ProvisioningState = ProvisioningState.START
    created: bool = False
    poll_attempts: int = 0

    @property
    def table_name(self) -> str:
        return self.model.table_name()

    def advance(self, new_state: ProvisioningState) -> None:
        if self.state.is_terminal:
            raise RuntimeError(f"Task for {self.model_name} already finished ({self.state.value})")
        if new_state is ProvisioningState.FAILED or new_state in _FORWARD[self.state]:
            self.state = new_state
            return
        raise RuntimeError(
            f"Invalid provisioning transition for {self.model_name}: {self.state.value} -> {new_state.value}"
        )


@dataclass(frozen=True)
class ProvisioningReport:
    created: tuple[str, ...] = ()
    existing: tuple[str, ...] = ()

    @property
    def table_names(self) -> tuple[str, ...]:
        return self.created + self.existing


class TableSetupService:
    """Ensure every model's table exists and is ready before the app depends on it.

    For each model: describe the table; if it is absent, create it and poll until
    it reports ACTIVE. Models run concurrently, at most `config.concurrency` at a time.

    Notes:
    - A table that already exists counts as provisioned whatever its status. A table
      still CREATING from an earlier or concurrent run is *not* waited on.
    - Nothing is rolled back: tables created before a failure stay in place.
    - What happens to the other models after a failure is set by `config.failure_policy`.
      Under RUN_TO_COMPLETION they keep running detached from the caller; see
      `wait_for_background` and `cancel_background`.
    """

    def __init__(self, config: Optional[ProvisioningConfig] = None) -> None:
        self._config = config or ProvisioningConfig()
        self._background: set[asyncio.Task] = set()

    @property
    def config(self) -> ProvisioningConfig:
        return self._config

    @staticmethod
    def build_tasks(
        models: Mapping[str, TableCapability],
        options: Optional[Mapping[str, TableOptions]] = None,
    ) -> list[ProvisioningTask]:
        options = options or {}
        return [
            ProvisioningTask(model_name=name, model=model, options=options.get(name) or TableOptions())
            for name, model in models.items()
        ]

    async def provision_one(self, task: ProvisioningTask) -> ProvisioningState:
        """Run one model's describe -> create -> wait sequence to a terminal state."""

        table_name = task.table_name

        try:
            descriptor = await task.model.describe_table()
        except Exception as exc:
            task.advance(ProvisioningState.FAILED)
            logger.error("Failed to describe table %s (model=%s): %s", table_name, task.model_name, exc)
            raise DescribeError(
                f"Failed to describe table {table_name}", model_name=task.model_name, table_name=table_name
            ) from exc

        if descriptor is not None:
            task.advance(ProvisioningState.DONE)
            return task.state

        logger.info("Table %s not found, creating (model=%s)", table_name, task.model_name)
        task.advance(ProvisioningState.CREATING_REMOTE)
        try:
            await task.model.create_table(task.options)
        except Exception as exc:
            task.advance(ProvisioningState.FAILED)
            logger.error("Failed to create table %s (model=%s): %s", table_name, task.model_name, exc)
            raise CreateError(
                f"Failed to create table {table_name}", model_name=task.model_name, table_name=table_name
            ) from exc

        task.created = True
        task.advance(ProvisioningState.WAITING_ACTIVE)
        logger.info("Waiting for table %s to become ACTIVE", table_name)
        await self._wait_until_active(task)

        task.advance(ProvisioningState.DONE)
        return task.state

    async def _wait_until_active(self, task: ProvisioningTask) -> None:
        config = self._config
        table_name = task.table_name
        deadline = None
        if config.wait_timeout_seconds is not None:
            deadline = time.monotonic() + config.wait_timeout_seconds

        while True:
            task.poll_attempts += 1
            try:
                descriptor = await task.model.describe_table()
            except Exception as exc:
                task.advance(ProvisioningState.FAILED)
                logger.error("Failed polling table %s (model=%s): %s", table_name, task.model_name, exc)
                raise PollError(
                    f"Failed polling status of table {table_name}",
                    model_name=task.model_name,
                    table_name=table_name,
                ) from exc

            # None right after CreateTable means the table is not visible to describe yet.
            if descriptor is not None and descriptor.is_active:
                return

            logger.debug(
                "Table %s not ACTIVE yet (status=%s, attempt=%d)",
                table_name,
                descriptor.status.value if descriptor is not None else "NOT_VISIBLE",
                task.poll_attempts,
            )

            exhausted = config.max_poll_attempts is not None and task.poll_attempts >= config.max_poll_attempts
            expired = deadline is not None and time.monotonic() >= deadline
            if exhausted or expired:
                task.advance(ProvisioningState.FAILED)
                logger.error(
                    "Gave up waiting for table %s to become ACTIVE after %d attempts (model=%s)",
                    table_name,
                    task.poll_attempts,
                    task.model_name,
                )
                raise PollTimeoutError(
                    f"Timed out waiting for table {table_name} to become ACTIVE",
                    model_name=task.model_name,
                    table_name=table_name,
                )

            await asyncio.sleep(config.poll_interval_seconds)

    async def provision_all(
        self,
        models: Mapping[str, TableCapability],
        options: Optional[Mapping[str, TableOptions]] = None,
    ) -> ProvisioningReport:
        """Provision every model's table with bounded concurrency.

        Raises the first ProvisioningError to complete. Once a failure is seen no
        further models are started. What happens to models already in flight is
        set by `config.failure_policy`; their outcomes are logged but not reported.
        """

        return await self.run_tasks(self.build_tasks(models, options))

    async def run_tasks(self, tasks: list[ProvisioningTask]) -> ProvisioningReport:
        """Bounded parallel executor behind provision_all.

        Each task's `state` holds its last reached state when this returns or raises.
        """

        if not tasks:
            return ProvisioningReport()

        policy = self._config.failure_policy
        semaphore = asyncio.Semaphore(self._config.concurrency)
        stop = asyncio.Event()

        async def _run_one(task: ProvisioningTask) -> ProvisioningTask:
            async with semaphore:
                if stop.is_set():
                    return task
                try:
                    await self.provision_one(task)
                except ProvisioningError:
                    # Set before the slot is released so no waiting model starts after a failure.
                    stop.set()
                    raise
                return task

        runners = {asyncio.create_task(_run_one(task)): task for task in tasks}
        first_error: Optional[ProvisioningError] = None
        detach = False

        try:
            for fut in tqdm(
                asyncio.as_completed(runners),
                total=len(runners),
                desc="Provisioning tables",
                unit="table",
                disable=not self._config.show_progress,
            ):
                try:
                    await fut
                except ProvisioningError as exc:
                    if first_error is not None:
                        logger.error("Additional provisioning failure not reported (model=%s)", exc.model_name)
                        continue
                    first_error = exc
                    if policy is FailurePolicy.RUN_TO_COMPLETION:
                        detach = True
                        break
                    if policy is FailurePolicy.CANCEL:
                        break
        finally:
            pending = [runner for runner in runners if not runner.done()]
            if detach:
                for runner in pending:
                    self._keep_in_background(runner, runners[runner])
            else:
                for runner in pending:
                    runner.cancel()
                if pending:
                    await asyncio.gather(*pending, return_exceptions=True)

        created = tuple(t.table_name for t in tasks if t.state is ProvisioningState.DONE and t.created)
        existing = tuple(t.table_name for t in tasks if t.state is ProvisioningState.DONE and not t.created)
        logger.info(
            "Table provisioning finished: models=%d, created=%d, existing=%d, failed=%d, in_flight=%d, not_started=%d",
            len(tasks),
            len(created),
            len(existing),
            sum(1 for t in tasks if t.state is ProvisioningState.FAILED),
            sum(1 for t in tasks if t.state in (ProvisioningState.CREATING_REMOTE, ProvisioningState.WAITING_ACTIVE)),
            sum(1 for t in tasks if t.state is ProvisioningState.START),
        )

        if first_error is not None:
            raise first_error

        return ProvisioningReport(created=created, existing=existing)

    # -----------------
    # Detached tasks
    # -----------------

    @property
    def background_tasks(self) -> frozenset[asyncio.Task]:
        return frozenset(self._background)

    def _keep_in_background(self, runner: asyncio.Task, task: ProvisioningTask) -> None:
        self._background.add(runner)

        def _on_done(done: asyncio.Task) -> None:
            self._background.discard(done)
            if done.cancelled():
                logger.info("Background provisioning cancelled (model=%s)", task.model_name)
                return
            exc = done.exception()
            if isinstance(exc, ProvisioningError):
                logger.error("Additional provisioning failure not reported (model=%s)", exc.model_name)
            elif exc is not None:
                logger.error("Background provisioning crashed (model=%s): %r", task.model_name, exc)
            else:
                logger.info("Background provisioning finished (model=%s, state=%s)", task.model_name, task.state.value)

        runner.add_done_callback(_on_done)

    async def wait_for_background(self) -> None:
        """Wait until every detached task has reached its own terminal state."""

        while self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    async def cancel_background(self) -> None:
        pending = list(self._background)
        for runner in pending:
            runner.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
