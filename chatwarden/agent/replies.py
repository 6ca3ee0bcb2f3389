"""Canned reply text."""

import random

FALLBACK_RESPONSES = [
    "I'm having trouble understanding that. Could you rephrase?",
    "Hmm, let me think about that again...",
    "My circuits are a bit fuzzy right now. Ask me later?",
]

FAILURE_RESPONSES = [
    "Oops, something went sideways on my end. Try again in a bit 🙏",
    "My brain just blue-screened. Give me a moment and try again.",
]

BLOCKED_RESPONSES = [
    "Yeah... I'm not going to touch that one 🙊",
    "Let's talk about something else, shall we?",
]

RETORTS = [
    "Takes one to know one 🙃",
    "I'd agree with you, but then we'd both be wrong.",
    "Noted. Filed under 'things I will ignore'.",
    "That's rich coming from someone talking to a bot.",
]

WELCOME = "👋 Welcome {mentions}! Read the group rules and enjoy your stay."
GOODBYE = "👋 {mentions} left the group. Take care!"

LINK_WARNING = "⚠️ @{handle}, links are not allowed here. Warning {count}/{max}."
LINK_REMOVED = "🚫 @{handle} reached {max} warnings and was removed."
SPAM_REMOVED = "🚫 @{handle} was removed for flooding the chat."
NO_PERMISSION = "I need to be a group admin to remove @{handle}."

COOLDOWN = "⏳ Slow down! Try again in {seconds}s."
PRIVILEGED_ONLY = "🔒 That command is reserved for my operators."
GROUP_ONLY = "This command only works in groups."

LEVEL_UP = "🎉 @{handle} reached level {level} ({title})!"


def pick(options: list[str], rng: random.Random | None = None) -> str:
    return (rng or random).choice(options)
