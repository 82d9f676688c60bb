"""Kafka consumer that keeps the catalog in sync with the ERP."""

import asyncio
import time
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from confluent_kafka import Consumer, KafkaError, KafkaException

from .exceptions import ConsumerFatalError
from .logger import kafka_logger as logger
from .processor import MessageProcessor, Outcome, ProcessingResult
from .schemas import Envelope, Topic

STATUS_LOG_INTERVAL = 300  # seconds
PARTITION_QUEUE_SIZE = 100
TOPICS = tuple(topic.value for topic in Topic)


class WorkerState(str, Enum):
    """Lifecycle of the sync worker."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    SUBSCRIBED = "subscribed"
    RUNNING = "running"
    STOPPING = "stopping"


ALLOWED_TRANSITIONS = {
    WorkerState.DISCONNECTED: {WorkerState.CONNECTING},
    WorkerState.CONNECTING: {WorkerState.SUBSCRIBED, WorkerState.STOPPING},
    WorkerState.SUBSCRIBED: {WorkerState.RUNNING, WorkerState.STOPPING},
    WorkerState.RUNNING: {WorkerState.STOPPING},
    WorkerState.STOPPING: {WorkerState.DISCONNECTED},
}


@dataclass
class PartitionSlot:
    """Queue of pending messages for one topic partition and its drain task."""

    queue: asyncio.Queue
    task: asyncio.Task


class SyncWorker:
    """Consumes ERP topics and hands every message to the processor.

    Messages of one partition are processed strictly one after the other;
    different partitions are processed concurrently, at most ``concurrency``
    at a time. A failing message is logged and dropped, it never stops the
    consume loop. Only fatal consumer errors end :meth:`run` with an
    exception.
    """

    def __init__(
        self,
        consumer_config: dict[str, Any],
        processor: MessageProcessor,
        topics: Iterable[str] = TOPICS,
        concurrency: int = 3,
        poll_timeout: float = 1.0,
        queue_size: int = PARTITION_QUEUE_SIZE,
    ):
        """Initialize the sync worker.

        Args:
            consumer_config: confluent-kafka consumer configuration
            processor: Message processor applying events to the catalog
            topics: Topics to subscribe to
            concurrency: Number of partitions processed simultaneously
            poll_timeout: Seconds a single poll may block
            queue_size: Pending messages buffered per partition
        """
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.consumer_config = consumer_config
        self.processor = processor
        self.topics = list(topics)
        self.concurrency = concurrency
        self.poll_timeout = poll_timeout
        self.queue_size = queue_size

        self.state = WorkerState.DISCONNECTED
        self.consumer: Optional[Consumer] = None
        self._partitions: dict[tuple[str, int], PartitionSlot] = {}
        self._semaphore = asyncio.Semaphore(concurrency)
        self._stop_requested = asyncio.Event()
        self._stopped = asyncio.Event()
        self._stopped.set()
        self._fault: Optional[BaseException] = None
        self._in_flight = 0
        self.outcomes: Counter = Counter()
        self.stats = {"messages_processed": 0, "errors": 0, "start_time": time.time()}

    def _transition(self, new_state: WorkerState) -> None:
        if new_state not in ALLOWED_TRANSITIONS[self.state]:
            raise RuntimeError(f"Invalid worker transition {self.state.value} -> {new_state.value}")
        logger.debug(f"Worker state | {self.state.value} -> {new_state.value}")
        self.state = new_state

    @property
    def is_running(self) -> bool:
        return self.state is WorkerState.RUNNING

    async def start(self) -> None:
        """Create the Kafka consumer and subscribe to the ERP topics.

        Raises:
            ConsumerFatalError: If the consumer cannot be created or subscribed
        """
        self._transition(WorkerState.CONNECTING)
        self._stopped.clear()
        self._stop_requested.clear()
        self._fault = None
        logger.info(
            f"Initializing consumer | bootstrap_servers={self.consumer_config.get('bootstrap.servers')} | "
            f"group_id={self.consumer_config.get('group.id')} | client_id={self.consumer_config.get('client.id')}"
        )
        try:
            self.consumer = Consumer(self.consumer_config)
            logger.info(f"Subscribing to topics: {self.topics}")
            self.consumer.subscribe(self.topics, on_assign=self._on_assign, on_revoke=self._on_revoke)
        except KafkaException as e:
            logger.critical(f"Failed to start Kafka consumer | error={e}")
            await self._shutdown()
            raise ConsumerFatalError(f"Failed to start Kafka consumer: {e}") from e
        self._transition(WorkerState.SUBSCRIBED)
        logger.info("Successfully subscribed to topics")

    async def run(self) -> None:
        """Consume messages until a stop is requested.

        Raises:
            ConsumerFatalError: On an unrecoverable consumer fault, after the
                worker has drained and disconnected
        """
        if self.state is WorkerState.DISCONNECTED:
            await self.start()
        self._transition(WorkerState.RUNNING)
        self.stats["start_time"] = time.time()
        logger.info(f"ERP sync worker started | concurrency={self.concurrency}")

        try:
            await self._consume()
        except KafkaException as e:
            logger.critical(f"Kafka consumer failed | error={e}")
            raise ConsumerFatalError(str(e)) from e
        finally:
            await self._shutdown()

        if self._fault is not None:
            raise ConsumerFatalError(f"Partition task crashed: {self._fault!r}") from self._fault

    async def _consume(self) -> None:
        last_status_log = time.monotonic()
        while not self._stop_requested.is_set():
            msg = await asyncio.to_thread(self.consumer.poll, self.poll_timeout)

            now = time.monotonic()
            if now - last_status_log >= STATUS_LOG_INTERVAL:
                self._log_status()
                last_status_log = now

            if msg is None:
                continue

            error = msg.error()
            if error is not None:
                self._handle_kafka_error(error)
                continue

            await self._dispatch(msg)

    def _handle_kafka_error(self, error: KafkaError) -> None:
        if error.code() == KafkaError._PARTITION_EOF:
            logger.debug("Reached end of partition")
            return
        self.stats["errors"] += 1
        if error.fatal():
            logger.critical(f"Fatal Kafka error | code={error.name()} | error={error.str()}")
            raise ConsumerFatalError(f"Fatal Kafka error: {error.str()}")
        logger.error(f"Kafka error | code={error.name()} | retriable={error.retriable()} | error={error.str()}")

    async def _dispatch(self, msg) -> None:
        key = (msg.topic(), msg.partition())
        slot = self._partitions.get(key)
        if slot is None:
            queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
            task = asyncio.create_task(self._drain_partition(queue), name=f"partition-{key[0]}-{key[1]}")
            task.add_done_callback(self._on_partition_task_done)
            slot = self._partitions[key] = PartitionSlot(queue=queue, task=task)
        # Blocks the poll loop while this partition is backed up
        await slot.queue.put(msg)

    async def _drain_partition(self, queue: asyncio.Queue) -> None:
        while True:
            msg = await queue.get()
            try:
                async with self._semaphore:
                    if self._stop_requested.is_set():
                        # Not started before shutdown; redelivered because no offset is stored
                        continue
                    self._in_flight += 1
                    try:
                        result = await self.handle_message(msg)
                    finally:
                        self._in_flight -= 1
                self._record(result)
                self._store_offset(msg)
            finally:
                queue.task_done()

    def _on_partition_task_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.opt(exception=error).critical(f"Partition task crashed | task={task.get_name()}")
            self._fault = error
            self.request_stop()

    async def handle_message(self, msg) -> ProcessingResult:
        """Decode and process one Kafka message.

        This is the error boundary of the worker: every failure becomes a
        logged ``ProcessingResult`` and nothing is raised.
        """
        topic = msg.topic()
        try:
            envelope = Envelope.from_message(msg)
            logger.debug(
                f"Received message | topic={envelope.topic} | partition={envelope.partition} | offset={envelope.offset}"
            )

            if not envelope.raw_payload:
                logger.warning(
                    f"Received empty message | topic={envelope.topic} | partition={envelope.partition} | "
                    f"offset={envelope.offset}"
                )
                return ProcessingResult(Outcome.IGNORED, topic, error="empty payload")

            if envelope.kind is None:
                logger.warning(f"Unknown topic, message ignored | topic={envelope.topic}")
                return ProcessingResult(Outcome.IGNORED, topic, error="unknown topic")

            try:
                data = envelope.decode()
            except ValueError as e:
                logger.error(
                    f"Failed to decode message | error={e} | raw_message={envelope.payload_preview()} | "
                    f"topic={envelope.topic} | partition={envelope.partition} | offset={envelope.offset}"
                )
                return ProcessingResult(Outcome.INVALID, topic, error=f"undecodable payload: {e}")

            return await self.processor.process(envelope.kind, data)

        except Exception as e:
            logger.opt(exception=e).error(
                f"Error processing message | error={e} | error_type={type(e).__name__} | "
                f"topic={topic} | partition={msg.partition()} | offset={msg.offset()}"
            )
            return ProcessingResult(Outcome.FAILED, topic, error=str(e))

    def _record(self, result: ProcessingResult) -> None:
        self.stats["messages_processed"] += 1
        self.outcomes[result.outcome.value] += 1
        if result.is_error:
            self.stats["errors"] += 1

    def _store_offset(self, msg) -> None:
        try:
            self.consumer.store_offsets(message=msg)
        except KafkaException as e:
            # Partition was revoked while the message was processed
            logger.warning(
                f"Could not store offset | topic={msg.topic()} | partition={msg.partition()} | "
                f"offset={msg.offset()} | error={e}"
            )

    def _on_assign(self, consumer, partitions) -> None:
        logger.info(f"Partitions assigned | partitions={[(p.topic, p.partition) for p in partitions]}")

    def _on_revoke(self, consumer, partitions) -> None:
        logger.info(f"Partitions revoked | partitions={[(p.topic, p.partition) for p in partitions]}")

    def request_stop(self) -> None:
        """Ask the consume loop to stop after the current poll."""
        if not self._stop_requested.is_set():
            logger.info("Shutdown requested, no new messages will be dispatched")
            self._stop_requested.set()

    async def stop(self) -> None:
        """Stop consuming and wait until in-flight messages have finished.

        Messages still queued behind them are discarded; their offsets are
        not stored, so they are redelivered after a restart.
        """
        if self.state is WorkerState.DISCONNECTED:
            return
        if self.state in (WorkerState.CONNECTING, WorkerState.SUBSCRIBED):
            # Started but never ran, nothing to drain
            await self._shutdown()
            return
        self.request_stop()
        await self._stopped.wait()

    async def _shutdown(self) -> None:
        if self.state is not WorkerState.STOPPING:
            self._transition(WorkerState.STOPPING)
        self._stop_requested.set()
        pending = self._discard_queued()
        logger.info(
            f"Stopping ERP sync worker | partitions={len(self._partitions)} | discarded={pending} | in_flight={self._in_flight}"
        )

        live = [slot for slot in self._partitions.values() if not slot.task.done()]
        await asyncio.gather(*(slot.queue.join() for slot in live))
        for slot in self._partitions.values():
            slot.task.cancel()
        await asyncio.gather(*(slot.task for slot in self._partitions.values()), return_exceptions=True)
        self._partitions.clear()

        self._log_status()
        if self.consumer is not None:
            try:
                await asyncio.to_thread(self.consumer.close)
                logger.info("Consumer closed")
            except (KafkaException, RuntimeError) as e:
                logger.error(f"Error closing consumer | error={e}")
            self.consumer = None

        self._transition(WorkerState.DISCONNECTED)
        self._stopped.set()
        logger.info("ERP sync worker stopped")

    def _discard_queued(self) -> int:
        """Drop messages that were queued but not started, without storing offsets."""
        discarded = 0
        for slot in self._partitions.values():
            while not slot.queue.empty():
                slot.queue.get_nowait()
                slot.queue.task_done()
                discarded += 1
        return discarded

    def get_stats(self) -> dict[str, Any]:
        """Snapshot of consumer statistics."""
        runtime = time.time() - self.stats["start_time"]
        processed = self.stats["messages_processed"]
        return {
            "state": self.state.value,
            "messages_processed": processed,
            "errors": self.stats["errors"],
            "outcomes": dict(self.outcomes),
            "partitions": len(self._partitions),
            "in_flight": self._in_flight,
            "runtime_seconds": round(runtime, 2),
            "messages_per_second": round(processed / runtime, 2) if runtime > 0 else 0.0,
        }

    def _log_status(self) -> None:
        stats = self.get_stats()
        logger.info(
            f"Consumer status | state={stats['state']} | messages_processed={stats['messages_processed']} | "
            f"errors={stats['errors']} | outcomes={stats['outcomes']} | runtime_seconds={stats['runtime_seconds']:.2f} | "
            f"messages_per_second={stats['messages_per_second']:.2f}"
        )
