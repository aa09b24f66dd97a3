#!/usr/bin/env python3
"""
SevaSync
Rotating house-cleaning seva assignments, kept in sync across devices
"""

import argparse
import sys
import time

from sevasync.app import SyncRunner, create_controller, create_sync_client
from sevasync.config import ConfigManager, ConfigurationError
from sevasync.core.logger import enable_system_logging, log_info, log_file_paths
from sevasync.core.state import StateError
from sevasync.networking import RecordServer
from sevasync.ui import CommandInterface, ConflictPrompt, ErrorDisplay, StatusDisplay


class SevaSyncApp:
    """Wires the controller, the sync client and the command line together"""

    def __init__(self, config: ConfigManager, interactive: bool = True):
        self.config = config
        self.interactive = interactive

        if config.enable_system_logging or config.debug_mode:
            enable_system_logging(True)

        self.controller = create_controller(config, on_warning=ErrorDisplay.show_warning)
        self.prompt = ConflictPrompt(self.controller.roster)

        if config.conflict_strategy == "manual" and not interactive:
            # Nobody to ask in headless mode
            log_info("Manual conflicts need a terminal, using lww", component="app")
            config.set("conflict_strategy", "lww")

        self.sync_client = create_sync_client(config, self.controller, chooser=self.prompt)
        self.sync_client.add_connection_listener(self._on_connection)
        self.runner = SyncRunner(self.controller, self.sync_client)
        self.controller.subscribe(self._on_state)

        print(f"✓ SevaSync initialized - Debug: {'ON' if config.debug_mode else 'OFF'}")

    def _on_state(self, state) -> None:
        if self.config.debug_mode:
            print(f"\n🔄 Assignments updated ({self.controller.snapshot().last_action})")

    def _on_connection(self, connection) -> None:
        if self.config.debug_mode:
            print(f"\n📡 Sync: {connection.value}")

    def start(self) -> None:
        self.runner.start()
        log_info(f"SevaSync started on {self.config.device_name}", component="app")

    def show_state(self) -> None:
        StatusDisplay.show_assignments(
            self.controller.roster,
            self.controller.state,
            self.controller.store.last_updated(),
        )

    def rotate(self) -> None:
        try:
            self.runner.call(self.controller.rotate)
        except StateError as e:
            ErrorDisplay.show_error("Rotation failed, nothing was changed", str(e))
            return
        ErrorDisplay.show_success("Rotation complete")
        self.show_state()

    def reset(self) -> None:
        self.runner.call(self.controller.reset_to_default)
        ErrorDisplay.show_success("Reset to default assignments")
        self.show_state()

    def clear(self) -> None:
        self.runner.call(self.controller.clear_storage_and_reset)
        ErrorDisplay.show_success("Storage cleared, defaults restored")
        self.show_state()

    def sync(self) -> None:
        changed = self.runner.run(self.sync_client.force_sync())
        if changed:
            ErrorDisplay.show_info("Pulled newer assignments")
            self.show_state()
        else:
            ErrorDisplay.show_info(f"Sync {self.sync_client.state.connection.value}")

    def status(self) -> None:
        StatusDisplay.show_sync_status(self.runner.call(self.controller.status))
        if self.config.debug_mode:
            for name, path in log_file_paths().items():
                print(f"Log ({name}): {path}")

    def share(self) -> None:
        print()
        print(StatusDisplay.format_share_text(self.controller.roster, self.controller.state))

    def online(self) -> None:
        self.runner.call(self.sync_client.set_online)
        ErrorDisplay.show_info("Back online, syncing")

    def offline(self) -> None:
        self.runner.call(self.sync_client.set_offline)
        ErrorDisplay.show_info("Offline, changes stay on this device until 'online'")

    def resolve(self, choice: str = "") -> None:
        if not self.runner.call(self.prompt.answer, choice):
            ErrorDisplay.show_warning("No conflict is waiting for an answer")

    def run_interactive(self) -> None:
        ui = CommandInterface("SevaSync")
        ui.register_command("state", self.show_state, "Show current assignments")
        ui.register_command("rotate", self.rotate, "Rotate everyone to the next seva")
        ui.register_command("reset", self.reset, "Reset to default assignments")
        ui.register_command("clear", self.clear, "Clear saved data and reset")
        ui.register_command("sync", self.sync, "Push pending changes and pull now")
        ui.register_command("status", self.status, "Show sync status")
        ui.register_command("share", self.share, "Print assignments as share text")
        ui.register_command("online", self.online, "Resume syncing")
        ui.register_command("offline", self.offline, "Stop syncing, keep working locally")
        ui.register_command("resolve", self.resolve, "Answer a conflict: local or remote")
        self.show_state()
        ui.run()

    def cleanup(self) -> None:
        self.runner.stop()


def serve(config: ConfigManager) -> None:
    """Host shared records over HTTP until interrupted"""
    if config.enable_system_logging or config.debug_mode:
        enable_system_logging(True)
    server = RecordServer(config.server_host, config.server_port, config.server_data_dir)
    print(f"🌐 Record host on {config.server_host}:{config.server_port}")
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        print("\n🛑 Stopping record host...")
    finally:
        server.stop()


def main():
    """Main entry point"""
    parser = argparse.ArgumentParser(description="SevaSync assignment rotation")
    parser.add_argument("--config", default="seva.ini", help="Config file (created if missing)")
    parser.add_argument("--auto", action="store_true", help="Sync headless without interface")
    parser.add_argument("--serve", action="store_true", help="Run the shared record host")
    parser.add_argument("--debug", action="store_true", help="Enable debug mode")
    parser.add_argument("--room", help="Shared record id to join")
    args = parser.parse_args()

    app = None
    try:
        config = ConfigManager(args.config)

        if args.debug:
            config.set("debug", "true")
            print("✓ Debug mode: ENABLED (via command line)")
        if args.room:
            config.set("record_id", args.room)

        if args.serve:
            serve(config)
            return

        app = SevaSyncApp(config, interactive=not args.auto)
        app.start()

        if args.auto:
            print("🎯 SevaSync syncing in automatic mode...")
            try:
                while True:
                    time.sleep(1)
            except KeyboardInterrupt:
                print("\n🛑 Stopping sync...")
        else:
            app.run_interactive()

    except ConfigurationError as e:
        ErrorDisplay.show_error("Configuration problem", str(e))
        sys.exit(2)
    except KeyboardInterrupt:
        print("\nExiting...")
    finally:
        if app is not None:
            app.cleanup()


if __name__ == "__main__":
    main()
