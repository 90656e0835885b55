"""Paper grid example.

Seeds an anchored grid on an in-memory book, walks the mid price through
a few levels and prints every cycle, showing each fill being replaced one
level away.
"""

import asyncio
import json

from deepgrid import BookParams, GridConfig, PaperGateway, ReconciliationDriver

POOL = "SUI_USDC"
PATH = [0.955, 0.9545, 0.9495, 0.9605, 0.9655, 0.952]


async def main():
    gateway = PaperGateway(book=BookParams(tick_size=0.0001, lot_size=0.1, min_size=1.0))
    config = GridConfig(min_price=0.94, max_price=0.97, level_count=6, order_size=1.0)
    driver = ReconciliationDriver(gateway, "MANAGER", POOL, config)
    driver.on("cycle", lambda s: print(json.dumps(s.to_dict())))

    for mid in PATH:
        filled = gateway.set_mid_price(POOL, mid)
        for order in filled:
            print(f"  filled {order.side.value} @ {order.price_micro / 1e6:.4f}")
        await driver.tick()

    resting = await gateway.list_open_orders("MANAGER", POOL)
    print(f"\n{len(resting)} orders resting, {len(gateway.fills)} fills")


if __name__ == "__main__":
    asyncio.run(main())
