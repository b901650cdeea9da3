# Drive a clockwise square (as seen on screen) using timed moves. Wheel base is
# 44 px, so 110 px/s per wheel in opposite directions turns at 5 rad/s and a
# quarter turn takes a little over 300 ms.

SIDE_MS = 1500
TURN_MS = 330


def forward(ms):
    setWheelSpeeds(110, 110)
    delay(ms)


def turn_clockwise(ms):
    setWheelSpeeds(110, -110)
    delay(ms)


for side in range(4):
    log(f"side {side + 1}")
    forward(SIDE_MS)
    turn_clockwise(TURN_MS)

motor(0, 0)
log(f"done with {getSensorCount()} sensors mounted")
