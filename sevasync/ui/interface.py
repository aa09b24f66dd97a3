#!/usr/bin/env python3
"""
User Interface Components for SevaSync
Provides command-line interface and status display
"""

import asyncio
import time
from typing import Dict, Any, Callable, Optional

from sevasync.core.logger import log_info, log_warning
from sevasync.core.state import AssignmentState, SyncRecord
from sevasync.core.tasks import Roster


class CommandInterface:
    """Command-line interface for SevaSync"""

    def __init__(self, app_name: str = "SevaSync"):
        self.app_name = app_name
        self.commands: Dict[str, Dict[str, Any]] = {}
        self.running = False

    def register_command(self, name: str, handler: Callable, description: str) -> None:
        """Register a command handler"""
        self.commands[name] = {"handler": handler, "description": description}

    def show_help(self) -> None:
        """Display available commands"""
        print(f"\n=== {self.app_name} Control ===")
        print("Commands:")
        for name, info in self.commands.items():
            print(f"  {name:<12} - {info['description']}")
        print("  help         - Show this help message")
        print("  quit         - Exit program")

    def dispatch(self, user_input: str) -> bool:
        """Run one command line; False means the user asked to quit"""
        parts = user_input.split()
        if not parts:
            return True

        cmd = parts[0].lower()
        args = parts[1:]

        if cmd in ["quit", "exit", "q"]:
            return False
        elif cmd == "help":
            self.show_help()
        elif cmd in self.commands:
            try:
                self.commands[cmd]["handler"](*args)
            except Exception as e:
                ErrorDisplay.show_error(f"Error executing command '{cmd}'", str(e))
        else:
            print("Unknown command. Type 'help' for available commands.")
        return True

    def run(self) -> None:
        """Run the command interface"""
        self.running = True
        self.show_help()

        try:
            while self.running:
                try:
                    user_input = input(f"\n{self.app_name.lower()}> ").strip()
                except EOFError:
                    break
                if not self.dispatch(user_input):
                    break
        except KeyboardInterrupt:
            pass
        finally:
            self.running = False
            print(f"\n👋 Goodbye from {self.app_name}!")

    def stop(self) -> None:
        """Stop the command interface"""
        self.running = False


class StatusDisplay:
    """Displays assignments and sync status"""

    @staticmethod
    def format_assignments(roster: Roster, state: AssignmentState) -> str:
        """Task / people table, one row per task"""
        width = max(len(name) for name in roster.names) + 2
        lines = [f"{'Seva':<{width}}Bhakto", "-" * (width + 30)]
        for task, people in zip(roster, state):
            lines.append(f"{task.name:<{width}}{', '.join(people)}")
        return "\n".join(lines)

    @staticmethod
    def show_assignments(
        roster: Roster, state: AssignmentState, last_updated: Optional[str] = None
    ) -> None:
        print("\n=== Seva Assignments ===")
        print(StatusDisplay.format_assignments(roster, state))
        if last_updated:
            print(f"\nLast updated: {last_updated}")

    @staticmethod
    def format_share_text(
        roster: Roster, state: AssignmentState, when: Optional[float] = None
    ) -> str:
        """Plain-text summary meant to be pasted into a group chat"""
        stamp = time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(when))
        text = "🏠 HOUSE CLEANING SEVA ASSIGNMENTS 🏠\n\n"
        text += f"📅 {stamp}\n\n"
        for task, people in zip(roster, state):
            text += f"📍 {task.name}: {', '.join(people)}\n"
        text += "\n🙏 Let's complete it before Sunday!"
        return text

    @staticmethod
    def show_sync_status(status: Dict[str, Any]) -> None:
        print("\n=== SevaSync Status ===")
        print(f"Device id: {status.get('origin_id')}")
        print(f"Last action: {status.get('last_action')} at {status.get('updated_at')}")
        print(f"Last modified by: {status.get('last_modified_by')}")
        print(f"People assigned: {status.get('headcount')}")

        sync = status.get("sync")
        if not sync:
            print("Sync: local only")
            return

        print(f"\nRoom: {sync.get('record_id') or '(not created yet)'}")
        print(f"Connection: {sync.get('connection', 'unknown').upper()}")
        print(f"Online: {sync.get('online')}")
        print(f"Pending changes: {sync.get('pending_changes')}")
        if sync.get("gave_up"):
            print("Retries exhausted, waiting before reconnecting")
        elif sync.get("consecutive_failures"):
            print(f"Consecutive failures: {sync.get('consecutive_failures')}")

        stats = sync.get("stats") or {}
        print(f"Sync quality: {stats.get('sync_quality', 'Unknown')}")
        print(
            f"Pushes: {stats.get('pushes', 0)}  Polls: {stats.get('polls', 0)}  "
            f"Adopted: {stats.get('adopted', 0)}  Conflicts: {stats.get('conflicts', 0)}"
        )

    @staticmethod
    def show_conflict(roster: Roster, local: SyncRecord, remote: SyncRecord) -> None:
        print("\n=== Sync Conflict ===")
        print(f"Your unsynced changes ({local.last_action}, {local.updated_at_millis}):")
        print(StatusDisplay.format_assignments(roster, local.state))
        print(
            f"\nShared copy from {remote.origin_id} "
            f"({remote.last_action}, {remote.updated_at_millis}):"
        )
        print(StatusDisplay.format_assignments(roster, remote.state))
        print("\nType 'resolve local' to keep yours or 'resolve remote' to take theirs.")


class ErrorDisplay:
    """Displays error messages and warnings"""

    @staticmethod
    def show_error(message: str, details: str = "") -> None:
        """Display error message"""
        print(f"❌ ERROR: {message}")
        if details:
            print(f"   Details: {details}")

    @staticmethod
    def show_warning(message: str) -> None:
        """Display warning message"""
        print(f"⚠️  WARNING: {message}")

    @staticmethod
    def show_info(message: str) -> None:
        """Display info message"""
        print(f"ℹ️  INFO: {message}")

    @staticmethod
    def show_success(message: str) -> None:
        """Display success message"""
        print(f"✅ SUCCESS: {message}")


class ConflictPrompt:
    """
    Chooser for manual conflict resolution.

    Called on the sync loop, it shows both copies and waits for answer()
    to be called from the command line. Unanswered prompts take the
    remote copy after ``timeout`` seconds.
    """

    def __init__(self, roster: Roster, timeout: float = 120.0):
        self.roster = roster
        self.timeout = timeout
        self._future: Optional[asyncio.Future] = None

    @property
    def waiting(self) -> bool:
        return self._future is not None and not self._future.done()

    def __call__(self, local: SyncRecord, remote: SyncRecord):
        return self._ask(local, remote)

    async def _ask(self, local: SyncRecord, remote: SyncRecord) -> str:
        # One question at a time; later callers share the pending answer
        future = self._future
        owner = future is None or future.done()
        if owner:
            future = self._future = asyncio.get_running_loop().create_future()
            StatusDisplay.show_conflict(self.roster, local, remote)
        try:
            return await asyncio.wait_for(asyncio.shield(future), timeout=self.timeout)
        except asyncio.TimeoutError:
            log_warning("Conflict prompt timed out, taking the shared copy", component="ui")
            if not future.done():
                future.set_result("remote")
            return "remote"
        finally:
            if owner and self._future is future:
                self._future = None

    def answer(self, choice: str) -> bool:
        """Deliver the user's choice; must run on the loop thread"""
        choice = choice.strip().lower()
        if choice not in ("local", "remote"):
            raise ValueError("Answer 'local' or 'remote'")
        if not self.waiting:
            return False
        self._future.set_result(choice)
        log_info(f"Conflict answered: {choice}", component="ui")
        return True
