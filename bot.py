#!/usr/bin/env python3
"""
Peepo Bot - Interactive Telegram Bot (Polling Mode)

A Telegram bot that sends random peepo pictures on request and
periodically to subscribed chats.

Commands:
    /start    - Welcome message
    /help     - Show available commands
    /peepo    - Get a random picture
    /sub      - Subscribe to periodic pictures (/sub <minutes> for a custom interval)
    /unsub    - Drop the subscription
    /sub_info - Show the current subscription

Configuration is read from the environment; see peepo_bot/config.py.
"""

import asyncio
import sys

from peepo_bot.app import main

if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
