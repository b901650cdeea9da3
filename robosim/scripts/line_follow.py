# Three-sensor line follower for a dark line on a light field.
# Point sensors read higher over dark ground (about 1000 on black, 60 on the
# default background). Sensor 0 sits on the robot's left, sensor 2 on its right.
# A faster left wheel turns the robot right, a faster right wheel turns it left.

THRESHOLD = 500
BASE = 45
TURN = 35


def on_line(i):
    return analogRead(i) > THRESHOLD


log("waiting for SW1")
waitSW(1)
log("go")

while not SW(2):
    left = on_line(0)
    center = on_line(1)
    right = on_line(2)

    if center and not left and not right:
        motor(BASE, BASE)
    elif left:
        motor(BASE - TURN, BASE + TURN)
    elif right:
        motor(BASE + TURN, BASE - TURN)
    else:
        # Lost the line: spin slowly in place.
        motor(-20, 20)
    delay(10)

motor(0, 0)
log("stopped by SW2")
