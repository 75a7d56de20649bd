"""
Binds a batch of objects to integer keys, drops them, forces a collection
and prints what the monitor reports.

    python -m gc_observer.gc_observer.demo --count 10
"""

import argparse
import gc
import logging
from typing import Optional

from .core import NotificationMonitor, WeakBinding


class Tracked:
    counter = 0

    def __init__(self) -> None:
        self.index = Tracked.counter
        Tracked.counter += 1

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.index})"


def run(count: int, monitor: Optional[NotificationMonitor] = None) -> list[int]:
    monitor = monitor or NotificationMonitor.instance()
    collected: list[int] = []

    def report(key: int) -> None:
        collected.append(key)
        print(f"object bound with key {key} was garbage collected")

    monitor.add_listener(report)
    try:
        objects: list[Tracked] = []
        bindings: list[WeakBinding[Tracked, int]] = []

        print("creating objects")
        for key in range(count):
            objects.append(Tracked())
            print(f"binding object {objects[-1]!r} with key {key}")
            bindings.append(monitor.bind(objects[-1], key))

        print("listing objects")
        for binding in bindings:
            print(binding.get())

        print("killing objects")
        objects.clear()
        gc.collect()
        monitor.wait_idle()

        print("listing objects")
        for binding in bindings:
            print(binding.get())
    finally:
        monitor.remove_listener(report)
    return collected


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="gc_observer.gc_observer.demo",
        description="Show garbage-collection notifications for bound objects.",
    )
    parser.add_argument("--count", type=int, default=100, help="objects to bind")
    parser.add_argument("--verbose", action="store_true", help="debug logging")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)
    collected = run(args.count)
    return 0 if len(collected) == args.count else 1


if __name__ == "__main__":
    raise SystemExit(main())
