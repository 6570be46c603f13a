import logging
import threading
import time

from radicle_ipfs import (
    CancelToken,
    IpfsAddress,
    IpfsClient,
    IpfsConfig,
    IpfsError,
    IpnsAddress,
    PubsubClient,
)


def main():
    logging.basicConfig(level=logging.INFO)

    # ==========================================================================
    # 1. Connect to the daemon
    # ==========================================================================
    print("🚀 Step 1: connecting to the IPFS daemon...")

    # RAD_IPFS_API_URL overrides the default http://localhost:9301
    config = IpfsConfig.from_env()
    ipfs = IpfsClient(config)
    pubsub = PubsubClient(config)

    try:
        print(f"✅ Daemon version {ipfs.version()} at {config.api_url}")
    except IpfsError as e:
        print(f"❌ {e}")
        return

    # ==========================================================================
    # 2. Store an input log and publish it under a name
    # ==========================================================================
    print("\n🚀 Step 2: storing inputs and publishing the machine name...")

    first = ipfs.dag_put({"expr": "(def x 1)", "prev": None})
    second = ipfs.dag_put({"expr": "(def y 2)", "prev": first})
    print(f"   - stored {first}")
    print(f"   - stored {second} -> {first}")

    machine_id = ipfs.key_gen(f"demo-machine-{int(time.time())}")
    ipfs.name_publish(machine_id, IpfsAddress(cid=second))
    print(f"✅ Published {machine_id}")

    head = ipfs.name_resolve(machine_id)
    print(f"   - {IpnsAddress(ipns_id=machine_id)} resolves to {head}")
    print(f"   - head node: {ipfs.dag_get(IpfsAddress(cid=head))}")

    # ==========================================================================
    # 3. Subscribe, publish, cancel
    # ==========================================================================
    print("\n🚀 Step 3: pubsub round trip...")

    topic = f"demo-{machine_id}"
    token = CancelToken()
    got_message = threading.Event()

    def on_message(message):
        print(f"   - received {message.data!r} on {message.topics}")
        got_message.set()

    listener = threading.Thread(target=pubsub.subscribe, args=(topic, on_message, token), daemon=True)
    listener.start()

    # The daemon only forwards messages published after the subscription is live.
    time.sleep(1)
    pubsub.publish(topic, b"new input available")

    if got_message.wait(10):
        print("✅ Message delivered")
    else:
        print("❌ No message within 10s")
    token.cancel()
    listener.join(5)
    print(f"✅ Subscription closed: {not listener.is_alive()}")


if __name__ == "__main__":
    main()
