"""
Process scanner for the AI System Finder.

Enumerates the running processes with psutil and yields those matching a
ProcessCriteria. CPU usage and disk I/O are measured as deltas over a short
sampling window; the window is only waited for when a criterion or detailed
output needs those metrics.
"""

import logging
import socket
import threading
import time
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Set, Tuple

import psutil

from ..errors import ProcessEnumerationError
from ..models.criteria import Protocol, ProcessCriteria
from ..models.search_results import ProcessDetails, ProcessMatch


logger = logging.getLogger(__name__)

# Seconds between the two CPU and I/O counter reads
DEFAULT_SAMPLE_INTERVAL = 0.5

PortTable = Dict[int, Dict[Protocol, Set[int]]]


@dataclass
class _Candidate:
    """A process that passed the name filter, with its first counter sample."""
    process: psutil.Process
    name: str
    pid: int
    io_before: Optional[Tuple[int, int]] = None


@dataclass
class _Metrics:
    """Metrics read for one candidate; None means unavailable."""
    cpu_percent: Optional[float] = None
    memory: Optional[int] = None
    disk_read: Optional[int] = None
    disk_write: Optional[int] = None
    ports: Optional[Dict[Protocol, Set[int]]] = None
    denied: List[str] = field(default_factory=list)


class ProcessSearchEngine:
    """
    Process scanner that matches running processes against criteria.

    Processes that exit during the scan are skipped silently. A metric the
    operating system refuses to report excludes the process only when a
    criterion needs that metric.

    Args:
        sample_interval: Seconds between the two counter samples
    """

    def __init__(self, sample_interval: float = DEFAULT_SAMPLE_INTERVAL):
        if sample_interval < 0:
            raise ValueError("Sample interval cannot be negative")
        self.sample_interval = sample_interval
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")
        self._stats = self._empty_stats()

    @staticmethod
    def _empty_stats() -> Dict[str, int]:
        return {
            'processes_scanned': 0,
            'processes_matched': 0,
            'processes_vanished': 0,
            'access_denied': 0
        }

    def search(self, criteria: ProcessCriteria, cancel: Optional[threading.Event] = None) -> Iterator[ProcessMatch]:
        """
        Start a process search and return the lazy sequence of matches.

        The process table is read before this method returns.

        Args:
            criteria: Compound filter to apply
            cancel: Event that stops the scan when set

        Returns:
            Iterator of ProcessMatch objects

        Raises:
            InvalidRange: If a range criterion is inverted
            ProcessEnumerationError: If the process table cannot be read
        """
        criteria.check_ranges()
        try:
            processes = list(psutil.process_iter())
        except (psutil.Error, OSError) as e:
            raise ProcessEnumerationError(f"Cannot enumerate processes: {e}") from e

        self.logger.info(f"Scanning {len(processes)} processes")
        return self._scan(processes, criteria, cancel)

    def _scan(
        self,
        processes: List[psutil.Process],
        criteria: ProcessCriteria,
        cancel: Optional[threading.Event],
    ) -> Iterator[ProcessMatch]:
        candidates = self._select_by_name(processes, criteria, cancel)

        if criteria.needs_sampling() and candidates:
            for candidate in candidates:
                self._prime(candidate, criteria)
            if cancel is not None:
                if cancel.wait(self.sample_interval):
                    self.logger.info("Process search cancelled")
                    return
            elif self.sample_interval:
                time.sleep(self.sample_interval)

        port_table = self._port_table() if criteria.needs_ports() and candidates else None

        for candidate in candidates:
            if cancel is not None and cancel.is_set():
                self.logger.info("Process search cancelled")
                return
            try:
                metrics = self._collect(candidate, criteria, port_table)
            except psutil.NoSuchProcess:
                self.logger.debug(f"Process {candidate.pid} exited during the scan")
                self._stats['processes_vanished'] += 1
                continue

            if not self._matches(metrics, criteria):
                continue

            details = self._details(candidate, metrics) if criteria.detailed else None
            self._stats['processes_matched'] += 1
            yield ProcessMatch(name=candidate.name, pid=candidate.pid, details=details)

    def _select_by_name(
        self,
        processes: List[psutil.Process],
        criteria: ProcessCriteria,
        cancel: Optional[threading.Event],
    ) -> List[_Candidate]:
        name_regex = criteria.name_regex
        candidates = []
        for process in processes:
            if cancel is not None and cancel.is_set():
                break
            self._stats['processes_scanned'] += 1
            try:
                name = process.name()
                pid = process.pid
            except psutil.NoSuchProcess:
                self._stats['processes_vanished'] += 1
                continue
            except psutil.AccessDenied:
                self.logger.debug(f"Name of process {process.pid} is not readable")
                self._stats['access_denied'] += 1
                continue

            if name_regex is not None and not name_regex.search(name):
                continue
            candidates.append(_Candidate(process=process, name=name, pid=pid))
        return candidates

    def _prime(self, candidate: _Candidate, criteria: ProcessCriteria) -> None:
        """Take the first CPU and I/O sample at the start of the window."""
        try:
            candidate.process.cpu_percent(None)
            if criteria.detailed or criteria.needs_disk():
                candidate.io_before = _io_bytes(candidate.process)
        except psutil.NoSuchProcess:
            pass
        except psutil.AccessDenied:
            self._stats['access_denied'] += 1

    def _collect(
        self,
        candidate: _Candidate,
        criteria: ProcessCriteria,
        port_table: Optional[PortTable],
    ) -> _Metrics:
        """
        Read the metrics the criteria or the output need.

        Raises:
            psutil.NoSuchProcess: If the process exited
        """
        metrics = _Metrics()
        process = candidate.process

        if criteria.detailed or criteria.needs_cpu():
            try:
                metrics.cpu_percent = process.cpu_percent(None)
            except psutil.AccessDenied:
                metrics.denied.append('cpu_percent')

        if criteria.detailed or criteria.needs_memory():
            try:
                metrics.memory = process.memory_info().rss
            except psutil.AccessDenied:
                metrics.denied.append('memory')

        if criteria.detailed or criteria.needs_disk():
            try:
                io_after = _io_bytes(process)
            except psutil.AccessDenied:
                io_after = None
                metrics.denied.append('disk')
            if io_after is not None and candidate.io_before is not None:
                metrics.disk_read = max(0, io_after[0] - candidate.io_before[0])
                metrics.disk_write = max(0, io_after[1] - candidate.io_before[1])

        if criteria.needs_ports():
            if port_table is not None:
                metrics.ports = port_table.get(candidate.pid, {Protocol.TCP: set(), Protocol.UDP: set()})
            else:
                try:
                    metrics.ports = _ports_of(process)
                except psutil.AccessDenied:
                    metrics.denied.append('ports')

        if metrics.denied:
            self._stats['access_denied'] += 1
            self.logger.debug(f"Access denied to {', '.join(metrics.denied)} of process {candidate.pid}")
        return metrics

    def _matches(self, metrics: _Metrics, criteria: ProcessCriteria) -> bool:
        """Check collected metrics against every specified criterion."""
        if not _in_range(metrics.cpu_percent, criteria.cpu_min, criteria.cpu_max):
            return False
        if not _in_range(metrics.memory, criteria.mem_min, criteria.mem_max):
            return False
        if not _in_range(metrics.disk_read, criteria.disk_read_min, criteria.disk_read_max):
            return False
        if not _in_range(metrics.disk_write, criteria.disk_write_min, criteria.disk_write_max):
            return False

        if criteria.ports:
            if metrics.ports is None:
                return False
            bound = [(protocol, port) for protocol, ports in metrics.ports.items() for port in ports]
            if not any(spec.matches(protocol, port) for spec in criteria.ports for protocol, port in bound):
                return False
        return True

    def _details(self, candidate: _Candidate, metrics: _Metrics) -> ProcessDetails:
        process = candidate.process
        try:
            cmdline = process.cmdline()
        except (psutil.AccessDenied, psutil.NoSuchProcess):
            cmdline = []
        try:
            exe = process.exe() or None
        except (psutil.AccessDenied, psutil.NoSuchProcess):
            exe = None

        ports = metrics.ports or {}
        return ProcessDetails(
            cmdline=cmdline,
            exe=exe,
            cpu_percent=metrics.cpu_percent,
            memory=metrics.memory,
            disk_read=metrics.disk_read,
            disk_write=metrics.disk_write,
            tcp_ports=sorted(ports.get(Protocol.TCP, ())),
            udp_ports=sorted(ports.get(Protocol.UDP, ())),
        )

    def _port_table(self) -> Optional[PortTable]:
        """
        Read the system-wide socket table.

        Returns None when the table is not readable, in which case ports are
        read per process.
        """
        try:
            connections = psutil.net_connections(kind='inet')
        except psutil.AccessDenied:
            self.logger.debug("System socket table is not readable, falling back to per-process reads")
            return None
        except (psutil.Error, OSError) as e:
            self.logger.warning(f"Error reading socket table: {e}")
            return None

        table: PortTable = {}
        for conn in connections:
            if conn.pid is None or not conn.laddr:
                continue
            entry = table.setdefault(conn.pid, {Protocol.TCP: set(), Protocol.UDP: set()})
            entry[_protocol(conn.type)].add(conn.laddr.port)
        return table

    def get_stats(self) -> Dict[str, int]:
        """
        Get statistics about the last scans.

        Returns:
            Dictionary containing operation statistics
        """
        return self._stats.copy()

    def reset_stats(self) -> None:
        """Reset the statistics counters."""
        self._stats = self._empty_stats()


def _in_range(value, minimum, maximum) -> bool:
    if minimum is None and maximum is None:
        return True
    if value is None:
        return False
    if minimum is not None and value < minimum:
        return False
    if maximum is not None and value > maximum:
        return False
    return True


def _io_bytes(process: psutil.Process) -> Optional[Tuple[int, int]]:
    """Bytes read and written so far, None where the platform has no I/O counters."""
    try:
        counters = process.io_counters()
    except AttributeError:
        return None
    return counters.read_bytes, counters.write_bytes


def _protocol(sock_type: int) -> Protocol:
    return Protocol.UDP if sock_type == socket.SOCK_DGRAM else Protocol.TCP


def _ports_of(process: psutil.Process) -> Dict[Protocol, Set[int]]:
    ports: Dict[Protocol, Set[int]] = {Protocol.TCP: set(), Protocol.UDP: set()}
    for conn in process.net_connections(kind='inet'):
        if conn.laddr:
            ports[_protocol(conn.type)].add(conn.laddr.port)
    return ports
