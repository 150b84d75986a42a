"""SentenceStash: collect, share and export sentences from books."""
