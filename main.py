#!/usr/bin/env python3
"""
Kling Panel - Main Entry Point

Drives the generation core from the command line.

Usage:
    # Save the Replicate API key
    python main.py set-key r8_xxx

    # Text to video
    python main.py generate --prompt "A paper boat drifting down a rainy street"

    # Image to video with start and end frames
    python main.py generate --mode i2v --prompt "a cat flying" --start-image cat.png --end-image sky.png
"""

import argparse
import asyncio
import logging
import sys

from core.config import get_config
from core.credentials import CredentialStore, mask_secret
from services.video_generation import ALLOWED_DURATIONS

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("klingpanel")


def main():
    parser = argparse.ArgumentParser(
        description="Kling Panel - video generation from the command line",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python main.py set-key r8_xxx
    python main.py generate --prompt "Slow dolly shot through a foggy forest"
    python main.py generate --mode i2v --prompt "a cat flying" --start-image cat.png
        """,
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Generate command
    gen_parser = subparsers.add_parser("generate", help="Generate a video")
    gen_parser.add_argument("--prompt", "-p", required=True, help="What the video should show")
    gen_parser.add_argument("--negative-prompt", "-n", help="Things to avoid")
    gen_parser.add_argument("--mode", "-m", choices=["t2v", "i2v"], default="t2v", help="Generation mode")
    gen_parser.add_argument(
        "--duration",
        "-d",
        type=int,
        choices=list(ALLOWED_DURATIONS),
        default=5,
        help="Clip length in seconds",
    )
    gen_parser.add_argument("--start-image", help="Start frame image (i2v)")
    gen_parser.add_argument("--end-image", help="End frame image (i2v, optional)")
    gen_parser.add_argument("--output", "-o", help="Output directory")
    gen_parser.add_argument("--poll-interval", type=float, help="Seconds between status checks")
    gen_parser.add_argument("--timeout", type=float, help="Give up after this many seconds")

    # Key commands
    key_parser = subparsers.add_parser("set-key", help="Save the Replicate API key")
    key_parser.add_argument("api_key", help="Replicate API token")

    subparsers.add_parser("show-key", help="Show the saved API key (masked)")
    subparsers.add_parser("clear-key", help="Remove the saved API key")
    subparsers.add_parser("check-config", help="Validate configuration")

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    if args.command == "generate":
        from cli.generate import run_generation

        result = asyncio.run(
            run_generation(
                prompt=args.prompt,
                mode=args.mode,
                duration=args.duration,
                negative_prompt=args.negative_prompt,
                start_image=args.start_image,
                end_image=args.end_image,
                output_dir=args.output,
                poll_interval=args.poll_interval,
                timeout=args.timeout,
            )
        )
        sys.exit(0 if result else 1)

    elif args.command == "set-key":
        try:
            CredentialStore().set_api_key(args.api_key)
        except ValueError as e:
            print(f"Error: {e}")
            sys.exit(1)
        print("API Key Saved")

    elif args.command == "show-key":
        key = CredentialStore().get_api_key()
        if not key:
            print("No API key set")
            sys.exit(1)
        print(mask_secret(key))

    elif args.command == "clear-key":
        CredentialStore().clear_api_key()
        print("API key removed")

    elif args.command == "check-config":
        issues = get_config().validate()
        for issue in issues:
            print(f"  - {issue}")
        if issues:
            sys.exit(1)
        print("Configuration OK")


if __name__ == "__main__":
    main()
