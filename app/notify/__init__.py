"""Matrix notifications: who we are (session), where we send (every joined room), and the files that remember it."""
