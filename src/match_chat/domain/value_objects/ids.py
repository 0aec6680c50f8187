from __future__ import annotations

# Client-assigned ids of unconfirmed messages. Server ids are bare UUIDs, so
# the two can never collide.
TEMP_ID_PREFIX = "temp-"
