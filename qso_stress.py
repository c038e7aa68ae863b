#!/usr/bin/env python3
"""
QSO Collector Stress Test

Simulates WSJT-X instances and N1MM+ logging QSOs at the same moment
to check that the collector handles every datagram.

WSJT-X QSOs are sent as LoggedADIF (Type 12) messages, N1MM+ QSOs as
<command:3>Log tagged text, both to the collector's single UDP port.
"""

import datetime
import socket
import sys
import threading
import time

from logcollector.wsjtx_protocol import build_logged_adif

HOST = '127.0.0.1'
PORT = 2237


def adif_field(name, value):
    value = str(value)
    return f"<{name}:{len(value.encode('utf-8'))}>{value}"


def build_adif(dx_call, dx_grid, freq_mhz, band, mode='FT8'):
    """Build an ADIF record string like WSJT-X puts in LoggedADIF"""
    now = datetime.datetime.now(datetime.timezone.utc)
    fields = [
        adif_field('call', dx_call),
        adif_field('gridsquare', dx_grid),
        adif_field('mode', mode),
        adif_field('rst_sent', '-10'),
        adif_field('rst_rcvd', '-12'),
        adif_field('qso_date', now.strftime('%Y%m%d')),
        adif_field('time_on', now.strftime('%H%M%S')),
        adif_field('qso_date_off', now.strftime('%Y%m%d')),
        adif_field('time_off', now.strftime('%H%M%S')),
        adif_field('band', band),
        adif_field('freq', f"{freq_mhz:.6f}"),
        adif_field('station_callsign', 'N5ZY'),
        adif_field('my_gridsquare', 'EM15'),
    ]
    return ' '.join(fields) + ' <EOR>'


def build_n1mm_log(adif_text):
    """Wrap ADIF in the N1MM+ Log command envelope"""
    return f"<command:3>Log<parameters:{len(adif_text.encode('utf-8'))}>{adif_text}".encode('utf-8')


def send_datagram(data, port=PORT):
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.sendto(data, (HOST, port))
    sock.close()


def send_wsjtx_qso(wsjtx_id, dx_call, dx_grid, freq_mhz, band, port=PORT):
    """Send a simulated LoggedADIF message"""
    adif_text = build_adif(dx_call, dx_grid, freq_mhz, band)
    send_datagram(build_logged_adif(wsjtx_id, adif_text), port)
    print(f"  Sent: {dx_call} on {freq_mhz:.3f} MHz via {wsjtx_id}")


def send_n1mm_qso(dx_call, dx_grid, freq_mhz, band, port=PORT):
    """Send a simulated N1MM+ Log command"""
    adif_text = build_adif(dx_call, dx_grid, freq_mhz, band, mode='SSB')
    send_datagram(build_n1mm_log(adif_text), port)
    print(f"  Sent: {dx_call} on {freq_mhz:.3f} MHz via N1MM+")


def run_threads(threads):
    for t in threads:
        t.start()
    for t in threads:
        t.join()


def stress_test_simultaneous(port=PORT):
    """
    Send 3 QSOs simultaneously (within milliseconds)
    Same callsign from two WSJT-X instances and N1MM+.
    """
    print("\n" + "="*60)
    print("STRESS TEST: Sending 3 QSOs SIMULTANEOUSLY")
    print("="*60)
    print("\nSending W1AW on 6m, 2m and 70cm at once.\n")

    run_threads([
        threading.Thread(target=send_wsjtx_qso, args=('WSJT-X - ic7610', 'W1AW', 'FN31', 50.313, '6m', port)),
        threading.Thread(target=send_wsjtx_qso, args=('WSJT-X - ic9700', 'W1AW', 'FN31', 144.174, '2m', port)),
        threading.Thread(target=send_n1mm_qso, args=('W1AW', 'FN31', 432.100, '70cm', port)),
    ])

    print("\n✅ All 3 QSOs sent simultaneously!")
    print("\nThe collector should log 3 QSOs for W1AW.")


def stress_test_noise(port=PORT):
    """
    Mix QSOs with datagrams the collector must drop
    (heartbeat, bad magic, missing call sign, truncated ADIF).
    """
    print("\n" + "="*60)
    print("STRESS TEST: QSOs mixed with junk datagrams")
    print("="*60)

    junk = [
        b'\xad\xbc\xcb\xda\x00\x00\x00\x03\x00\x00\x00\x00',  # Heartbeat header
        b'\xad\xbc\xcb\xdb\x00\x00\x00\x03\x00\x00\x00\x0c',  # Bad magic
        build_logged_adif('WSJT-X', '<BAND:2>2m <MODE:3>FT8 <EOR>'),  # No call
        build_logged_adif('WSJT-X', '<CALL:12>K1'),  # Truncated
        b'hello',
    ]
    threads = [threading.Thread(target=send_datagram, args=(data, port)) for data in junk]
    threads.append(threading.Thread(target=send_wsjtx_qso, args=('WSJT-X - ic7610', 'K1JT', 'FN20', 50.313, '6m', port)))
    threads.append(threading.Thread(target=send_n1mm_qso, args=('N1MM', 'FN41', 144.200, '2m', port)))
    run_threads(threads)

    print(f"\n✅ Sent {len(junk)} junk datagrams and 2 QSOs.")
    print("\nOnly K1JT and N1MM should be logged.")


def stress_test_extreme(port=PORT):
    """
    Send 12 QSOs as fast as possible
    This tests the receive loop and sink queues under load.
    """
    print("\n" + "="*60)
    print("STRESS TEST: EXTREME - 12 QSOs as fast as possible")
    print("="*60)
    print("\nThis pushes the queues to their limits.\n")

    calls = ['W1AW', 'K1JT', 'N1MM', 'VE3NEA']

    threads = []
    for call in calls:
        for radio, freq, band in [('ic7610', 50.313, '6m'),
                                  ('ic9700', 144.174, '2m'),
                                  ('ic7300', 432.065, '70cm')]:
            threads.append(threading.Thread(target=send_wsjtx_qso,
                                            args=(f'WSJT-X - {radio}', call, 'FN31', freq, band, port)))
    run_threads(threads)

    print(f"\n✅ All {len(threads)} QSOs sent!")


def main():
    port = int(sys.argv[1]) if len(sys.argv) > 1 else PORT

    print("="*60)
    print("UDP Log Collector Stress Tester")
    print("="*60)
    print()
    print("Prerequisites:")
    print(f"  1. Collector is running (python collector.py --port {port})")
    print()
    print("Tests available:")
    print("  1. Simultaneous - 3 QSOs at exact same moment")
    print("  2. Noise - QSOs mixed with invalid datagrams")
    print("  3. Extreme - 12 QSOs as fast as possible")
    print("  4. Run all tests")
    print("  0. Exit")
    print()

    while True:
        choice = input("Select test (1-4, 0 to exit): ").strip()

        if choice == '0':
            break
        elif choice == '1':
            stress_test_simultaneous(port)
        elif choice == '2':
            stress_test_noise(port)
        elif choice == '3':
            stress_test_extreme(port)
        elif choice == '4':
            stress_test_simultaneous(port)
            time.sleep(3)
            stress_test_noise(port)
            time.sleep(3)
            stress_test_extreme(port)
        else:
            print("Invalid choice")

        print()


if __name__ == '__main__':
    main()
