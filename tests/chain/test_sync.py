import threading

from provchain.chain import Chain, SynchronizedChain, generate_keypair


def test_concurrent_pushes_are_serialised():
    shared = SynchronizedChain()
    barrier = threading.Barrier(8)

    def writer(worker: int) -> None:
        barrier.wait()
        for item in range(50):
            shared.push(f"{worker}:{item}".encode())

    threads = [threading.Thread(target=writer, args=(worker,)) for worker in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(shared) == 401
    assert [record.index for record in shared.records] == list(range(401))
    assert shared.verify() is True


def test_verification_alongside_writers_never_fails():
    shared = SynchronizedChain()
    results: list[bool] = []
    done = threading.Event()

    def writer() -> None:
        shared.extend(str(item).encode() for item in range(200))
        done.set()

    def reader() -> None:
        while not done.is_set():
            results.append(shared.verify())

    threads = [threading.Thread(target=writer), threading.Thread(target=reader)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert all(results)
    assert shared.audit() == []


def test_wraps_an_existing_chain():
    chain = Chain()
    chain.push(b"existing")

    shared = SynchronizedChain(chain)
    shared.push(b"more")

    assert len(chain) == 3
    assert shared.to_dict()["records"][1]["payload_b64"] == "ZXhpc3Rpbmc="


def test_reads_go_through_the_wrapper():
    shared = SynchronizedChain()
    first = shared.push(b"first")
    second = shared.push(b"second")

    assert shared[1] is first
    assert shared[-1] is second
    assert shared.head is second
    assert shared.head_digest == second.self_digest
    assert shared.find(first.self_digest) is first
    assert shared.find(b"\x00" * 32) is None


def test_signed_pushes_through_the_wrapper():
    signing_key, verify_key = generate_keypair()
    shared = SynchronizedChain()

    shared.push(b"mine", signing_key=signing_key)
    shared.extend([b"also mine", b"and this"], signing_key=signing_key)
    shared.push(b"anonymous")

    assert [record.index for record in shared.find_by_owner(verify_key)] == [1, 2, 3]
    assert shared.verify() is True
