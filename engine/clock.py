import time


def now_ms():
    return int(time.time() * 1000)
