REDIS_STATE_KEY = "room:state:{slug}" # room id - hash holding the RoomState record
REDIS_ROOM_CHANNEL = "room:channel:{slug}" # room id - pub/sub channel carrying state broadcasts

# **Example `room:state:{id}` hash fields** (every value JSON encoded)
# - `roomId` = "\"k3v9x0qa2m\""
# - `hostId` = "\"5f0c...\""
# - `videoId` = "\"LXb3EKWsInQ\""
# - `isPlaying` = "true"
# - `timestamp` = "42.0"
# - `lastUpdated` = "1731846896000"
