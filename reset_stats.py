"""
Reset all study tracker data.
Deletes every subject and session and discards any timer in progress,
so stats start again from 0. Offers to save an export first.
"""

from pathlib import Path

from PySide6.QtCore import QCoreApplication

from app import build_app


def reset_all_stats(app, ask=input):
    """Clear all data after confirmation. Returns True if anything was reset."""
    repo = app.repository
    if not repo.subjects and not repo.sessions and not app.timer.running:
        print("No study data found. Stats are already at 0.")
        return False

    print(f"Found {len(repo.subjects)} subject(s) and {len(repo.sessions)} session(s).")

    backup = ask("Save a backup export first? Enter a file path or leave empty to skip: ").strip()
    if backup:
        try:
            Path(backup).write_text(repo.export_data(), encoding="utf-8")
            print(f"✓ Backup written to {backup}")
        except OSError as e:
            print(f"✗ Could not write backup: {e}")
            return False

    confirm = ask("Are you sure you want to reset all stats? This cannot be undone. (yes/no): ")
    if confirm.lower() not in ['yes', 'y']:
        print("Reset cancelled.")
        return False

    app.timer.reset()
    repo.clear_all_data()
    print("✓ All subjects and sessions deleted")
    print("✓ All stats have been reset to 0")
    return True


if __name__ == "__main__":
    print("=" * 50)
    print("Study Tracker - Reset All Stats")
    print("=" * 50)
    qt_app = QCoreApplication([])
    app = build_app()
    try:
        reset_all_stats(app)
    finally:
        app.shutdown()
    print("\nPress Enter to exit...")
    input()
