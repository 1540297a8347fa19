import threading
import time

from bank.locks import KeyedLock


def test_same_key_is_serialized():
    locks = KeyedLock()
    inside = []
    overlaps = []

    def work():
        with locks.hold("pay_1"):
            inside.append(1)
            if len(inside) > 1:
                overlaps.append(True)
            time.sleep(0.01)
            inside.pop()

    threads = [threading.Thread(target=work) for _ in range(5)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert overlaps == []
    assert len(locks) == 0


def test_different_keys_do_not_block():
    locks = KeyedLock()

    with locks.hold("pay_1"):
        acquired = threading.Event()

        def other():
            with locks.hold("pay_2"):
                acquired.set()

        t = threading.Thread(target=other)
        t.start()
        assert acquired.wait(timeout=1)
        t.join()
        assert len(locks) == 1
