
# Single counter: check then decrement.
# Returns {ok, current, next}; ok=0 with current=next when stock is short.
LUA_DECREMENT_STOCK = """
local key = KEYS[1]
local qty = tonumber(ARGV[1]) or 0
if qty <= 0 then
  return {0, -1, -1}
end

local current = tonumber(redis.call("GET", key) or "0") or 0
if current < 0 then
  current = 0
end

if current < qty then
  return {0, current, current}
end

local next = current - qty
if next < 0 then
  next = 0
end

redis.call("SET", key, next)
return {1, current, next}
"""


# All-or-nothing decrement over KEYS[i] by ARGV[i].
# First pass validates every counter, second pass writes; nothing is written if any check fails.
# Success: {1, current_1, next_1, current_2, next_2, ...}
# Failure: {0, failed_index (1-based), available}
LUA_DECREMENT_MULTI_STOCK = """
for i = 1, #KEYS do
  local qty = tonumber(ARGV[i]) or 0
  if qty <= 0 then
    return {0, i, -1}
  end
  local current = tonumber(redis.call("GET", KEYS[i]) or "0") or 0
  if current < 0 then
    current = 0
  end
  if current < qty then
    return {0, i, current}
  end
end

local out = {1}
for i = 1, #KEYS do
  local qty = tonumber(ARGV[i]) or 0
  local current = tonumber(redis.call("GET", KEYS[i]) or "0") or 0
  if current < 0 then
    current = 0
  end
  local next = current - qty
  if next < 0 then
    next = 0
  end
  redis.call("SET", KEYS[i], next)
  table.insert(out, current)
  table.insert(out, next)
end
return out
"""
