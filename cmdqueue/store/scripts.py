"""
Lua scripts for the Redis job store.

Redis runs each script to completion before serving any other command, which
makes every script below one atomic transition over the record hash and the
pending list. Records are the JSON form of ``cmdqueue.types.job.Job``.

Common keys:
    KEYS[1]: records hash (job id -> JSON record)
    KEYS[2]: pending queue list (job ids, head first)
"""

# ARGV[1]: job id
# ARGV[2]: JSON record
ENQUEUE_SCRIPT = """
if redis.call("HEXISTS", KEYS[1], ARGV[1]) == 1 then
  return "exists"
end

redis.call("HSET", KEYS[1], ARGV[1], ARGV[2])
redis.call("RPUSH", KEYS[2], ARGV[1])
return "queued"
"""

# ARGV[1]: claim timestamp (ISO-8601)
CLAIM_SCRIPT = """
while true do
  local job_id = redis.call("LPOP", KEYS[2])
  if not job_id then
    return nil
  end

  local data = redis.call("HGET", KEYS[1], job_id)
  if data then
    local job = cjson.decode(data)
    if job.status == "pending" then
      job.status = "running"
      job.started_at = ARGV[1]
      job.version = (job.version or 0) + 1
      local encoded = cjson.encode(job)
      redis.call("HSET", KEYS[1], job_id, encoded)
      return encoded
    end
  end
end
"""

# ARGV[1]: job id
# ARGV[2]: cancel timestamp (ISO-8601)
CANCEL_SCRIPT = """
local data = redis.call("HGET", KEYS[1], ARGV[1])
if not data then
  return cjson.encode({outcome = "not_found"})
end

local job = cjson.decode(data)
if job.status == "cancelled" then
  return cjson.encode({outcome = "already_cancelled", job = job})
end
if job.status == "succeeded" or job.status == "failed" then
  return cjson.encode({outcome = "already_completed", job = job})
end

local removed = redis.call("LREM", KEYS[2], 0, ARGV[1])
job.status = "cancelled"
job.cancelled_at = ARGV[2]
job.version = (job.version or 0) + 1
redis.call("HSET", KEYS[1], ARGV[1], cjson.encode(job))

local outcome = "cancelled_running"
if removed > 0 then
  outcome = "cancelled_from_queue"
end
return cjson.encode({outcome = outcome, job = job})
"""

# KEYS[1] only
# ARGV[1]: job id
# ARGV[2]: terminal status (succeeded | failed)
# ARGV[3]: captured output as JSON (a string or null)
# ARGV[4]: finish timestamp (ISO-8601)
COMPLETE_SCRIPT = """
local data = redis.call("HGET", KEYS[1], ARGV[1])
if not data then
  return cjson.encode({outcome = "not_found"})
end

local job = cjson.decode(data)
local claimed = type(job.started_at) == "string"
if job.status == "cancelled" and claimed then
  job.output = cjson.decode(ARGV[3])
  job.version = (job.version or 0) + 1
  redis.call("HSET", KEYS[1], ARGV[1], cjson.encode(job))
  return cjson.encode({outcome = "cancelled", job = job})
end
if job.status == "succeeded" or job.status == "failed" then
  return cjson.encode({outcome = "already_completed", job = job})
end
if job.status ~= "running" then
  return cjson.encode({outcome = "not_running", job = job})
end

job.status = ARGV[2]
job.finished_at = ARGV[4]
job.output = cjson.decode(ARGV[3])
job.version = (job.version or 0) + 1
redis.call("HSET", KEYS[1], ARGV[1], cjson.encode(job))
return cjson.encode({outcome = "completed", job = job})
"""
