# Waits for a button, then reports the sensors once a second until SW3 stops it.

waitSW(1)
motor(30, 30)

count = getSensorCount()
while not SW(3):
    readings = []
    for i in range(count):
        readings.append(analogRead(i))
    log(f"sensors: {readings}")
    delay(1000)

motor(0, 0)
