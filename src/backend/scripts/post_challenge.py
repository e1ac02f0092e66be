"""
Post one challenge to a group outside the schedule.

Run with: python -m scripts.post_challenge <group> [-c CONFIG] [-q QUESTION]
"""

import asyncio
import sys
from typing import Optional

from scripts._common import open_service

from core.exceptions import ChallengeBotError


async def post_challenge(group_name: str, config_path: Optional[str], question: Optional[str]) -> int:
    """Post the challenge and return the process exit code."""
    try:
        async with open_service(config_path) as (app_config, service):
            group = app_config.get_group(group_name)
            record = await service.post_challenge(group, question_text=question)
    except ChallengeBotError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"Posted challenge #{record.id} to '{record.group_name}' (poll {record.poll_id})")
    print(f"Question: {record.question_text}")
    return 0


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Post a challenge poll to a group now")
    parser.add_argument("group", help="Group name as written in the configuration file")
    parser.add_argument(
        "-c",
        "--config",
        default=None,
        help="Path to the group configuration file (defaults to CONFIG_PATH)",
    )
    parser.add_argument(
        "-q",
        "--question",
        default=None,
        help="Question text to post instead of the group's template",
    )
    args = parser.parse_args()

    sys.exit(asyncio.run(post_challenge(args.group, args.config, args.question)))
