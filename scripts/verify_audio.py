#!/usr/bin/env python3
"""
Audio File Verification Script

Verifies that every symbol and coach-phrase clip exists and is plausibly valid.
Checks for:
- File existence
- File size (warns on suspiciously small files)

Usage:
    python scripts/verify_audio.py
    python scripts/verify_audio.py --strict  # Exit with error if any issues
"""

import sys
import argparse
from pathlib import Path
from bopomofo.constants import AUDIO_DIR
from bopomofo.services.speech import audio_clips

# Minimum expected file size in bytes (suspiciously small if below this)
MIN_FILE_SIZE_BYTES = 1000  # 1KB


def get_project_root() -> Path:
    """Get the project root directory."""
    # This script is in scripts/, so parent is project root
    return Path(__file__).parent.parent


def verify_audio_files(strict: bool = False, quiet: bool = False) -> bool:
    """
    Verify all clips exist and are valid.

    Args:
        strict: If True, treat warnings as errors
        quiet: If True, only print the summary

    Returns:
        True if all files pass verification, False otherwise
    """
    audio_path = get_project_root() / AUDIO_DIR
    clips = audio_clips()

    print(f"Verifying audio files in: {audio_path}")
    print("-" * 50)

    missing_files = []
    small_files = []
    valid_files = []

    for clip, text in clips.items():
        file_path = audio_path / f"{clip}.mp3"

        if not file_path.exists():
            missing_files.append(clip)
            if not quiet:
                print(f"  MISSING: {clip}.mp3 ({text})")
            continue

        file_size = file_path.stat().st_size
        if file_size < MIN_FILE_SIZE_BYTES:
            small_files.append((clip, file_size))
            if not quiet:
                print(f"  WARNING: {clip}.mp3 - suspiciously small ({file_size} bytes)")
        else:
            valid_files.append(clip)
            if not quiet:
                print(f"  OK: {clip}.mp3 ({file_size} bytes)")

    print("-" * 50)
    print("Summary:")
    print(f"  Valid files:   {len(valid_files)}/{len(clips)}")
    print(f"  Missing files: {len(missing_files)}")
    print(f"  Small files:   {len(small_files)}")

    if missing_files:
        print(f"\nMissing files: {', '.join(missing_files)}")

    if small_files:
        print("\nSmall files (may need regeneration):")
        for clip, size in small_files:
            print(f"  - {clip}.mp3 ({size} bytes)")

    has_errors = len(missing_files) > 0
    has_warnings = len(small_files) > 0

    if strict and (has_errors or has_warnings):
        print("\nResult: FAIL (strict mode)")
        return False
    elif has_errors:
        print("\nResult: FAIL")
        return False
    elif has_warnings:
        print("\nResult: PASS with warnings")
        return True
    else:
        print("\nResult: PASS")
        return True


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Verify Bopomofo audio clips exist and are valid"
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Treat warnings as errors (exit with non-zero status)"
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Only output summary, not individual file status"
    )

    args = parser.parse_args()

    success = verify_audio_files(strict=args.strict, quiet=args.quiet)

    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
