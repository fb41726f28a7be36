from collections import deque
import itertools
import logging

from amaranth import *

logger = logging.getLogger(__name__)


class SyncHarness(Elaboratable):

    def __init__(self, dut):
        self.dut = dut
        self.rst = Signal()

    def elaborate(self, platform):
        m = Module()

        cd_sync = m.domains.sync = ClockDomain('sync')
        m.d.comb += cd_sync.rst.eq(self.rst)

        m.submodules.dut = self.dut

        return m


def read_word(image, addr):
    word = 0
    for i in range(4):
        word |= image.get(addr + i, 0) << (8 * i)
    return word


class InstrMemory:
    """OBI instruction memory answering from a byte dictionary.

    Call :meth:`respond` once per cycle after every other input of the
    cycle has been set and before the clock edge. A request that is
    retracted or changes its address before it is granted fails an
    assertion.
    """

    def __init__(self, bus, image=None, latency=1, gnt_pattern=None):
        assert latency >= 1

        self.bus = bus
        self.image = dict(image or {})
        self.latency = latency
        self.gnt_pattern = itertools.cycle(
            gnt_pattern) if gnt_pattern is not None else None

        self.cycle = 0
        self.pending = deque()
        self.held = None
        self.requests = []

    def reset(self):
        self.pending.clear()
        self.held = None

    def respond(self, ctx):
        if self.pending and self.pending[0][0] <= self.cycle:
            _, addr = self.pending.popleft()
            data = read_word(self.image, addr)
            logger.debug('cycle %d: rvalid addr=%08x data=%08x', self.cycle,
                         addr, data)
            ctx.set(self.bus.rvalid, 1)
            ctx.set(self.bus.rdata, data)
        else:
            ctx.set(self.bus.rvalid, 0)

        gnt = next(self.gnt_pattern) if self.gnt_pattern is not None else 1
        ctx.set(self.bus.gnt, gnt)

        req = ctx.get(self.bus.req)
        addr = ctx.get(self.bus.addr)

        if self.held is not None:
            assert req, f'request for {self.held:08x} retracted before gnt'
            assert addr == self.held, (
                f'request address changed from {self.held:08x} to '
                f'{addr:08x} before gnt')

        if req and gnt:
            self.requests.append(addr)
            self.pending.append((self.cycle + self.latency, addr))
            self.held = None
        elif req:
            self.held = addr
        else:
            self.held = None

        self.cycle += 1
