"""Real-time delivery — the websocket push channel.

Learn: Viewers connect to /ws and never send anything. Every frame the
server sends is a JSON array of event records: first the catch-up
window, then one frame per tick that found new passages.
"""
