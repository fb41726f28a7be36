from amaranth import *

from rvif.fifo import SyncFIFO
from rvif.types import HasFetchParams


class FetchUnit(HasFetchParams, Elaboratable):

    def __init__(self, ibus, params):
        super().__init__(params)

        assert ibus.data_width == self.fetch_bytes * 8

        self.ibus = ibus

        self.req = Signal()
        self.redirect = Signal()
        self.redirect_addr = Signal(32)
        self.consume_ready = Signal()

        self.valid = Signal()
        self.rdata = Signal(32)
        self.busy = Signal()

    def elaborate(self, platform):
        m = Module()

        depth = self.fetch_buffer_depth

        fifo = m.submodules.fifo = SyncFIFO(width=32, depth=depth)

        fetch_addr = Signal(32)
        outstanding = Signal(range(depth + 1))
        discard = Signal(range(depth + 2))

        # Request raised in an earlier cycle and not yet granted
        pending = Signal()
        # The held request was overtaken by a redirect
        restart = Signal()
        restart_addr = Signal(32)

        has_space = (fifo.level + outstanding) < depth
        target = Cat(Const(0, 2), self.redirect_addr[2:])

        # OBI: once raised, req and addr stay put until gnt
        m.d.comb += [
            self.ibus.req.eq(pending | (self.req & ~self.redirect
                                        & has_space)),
            self.ibus.addr.eq(fetch_addr),
            self.ibus.we.eq(0),
            self.ibus.be.eq((1 << len(self.ibus.be)) - 1),
        ]

        issue = self.ibus.fire
        resp = self.ibus.rvalid

        m.d.sync += pending.eq(self.ibus.req & ~self.ibus.gnt)

        with m.If(self.redirect):
            with m.If(pending & ~self.ibus.gnt):
                m.d.sync += [
                    restart.eq(1),
                    restart_addr.eq(target),
                ]
            with m.Else():
                m.d.sync += [
                    restart.eq(0),
                    fetch_addr.eq(target),
                ]
        with m.Elif(issue):
            with m.If(restart):
                m.d.sync += [
                    restart.eq(0),
                    fetch_addr.eq(restart_addr),
                ]
            with m.Else():
                m.d.sync += fetch_addr.eq(fetch_addr + 4)

        with m.If(issue & ~resp):
            m.d.sync += outstanding.eq(outstanding + 1)
        with m.Elif(resp & ~issue):
            m.d.sync += outstanding.eq(outstanding - 1)

        # Responses to requests granted before a redirect are dropped,
        # including a held request granted after it
        with m.If(self.redirect):
            m.d.sync += discard.eq(outstanding + issue - resp)
        with m.Else():
            m.d.sync += discard.eq(discard + (issue & restart) -
                                   (resp & (discard != 0)))

        m.d.comb += [
            fifo.flush.eq(self.redirect),
            fifo.w_data.eq(self.ibus.rdata),
            fifo.w_en.eq(resp & (discard == 0) & ~self.redirect),
            fifo.r_en.eq(self.consume_ready),
        ]

        m.d.comb += [
            self.valid.eq(fifo.r_rdy & ~self.redirect),
            self.rdata.eq(fifo.r_data),
            self.busy.eq((outstanding != 0) | self.ibus.req),
        ]

        return m
