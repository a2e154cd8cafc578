"""Feature modules exposed over the messaging gateway."""
