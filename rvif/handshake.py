from amaranth import *


class FetchHandshake(Elaboratable):

    def __init__(self):
        self.pc_set = Signal()
        self.req = Signal()
        self.halt_if = Signal()
        self.id_ready = Signal()

        self.fetch_valid = Signal()
        self.fetch_busy = Signal()
        self.aligner_ready = Signal()

        self.redirect = Signal()
        self.consume_ready = Signal()
        self.if_ready = Signal()
        self.if_valid = Signal()
        self.busy = Signal()
        self.miss = Signal()

    def elaborate(self, platform):
        m = Module()

        # Nothing leaves the stage on a redirect tick
        m.d.comb += [
            self.if_ready.eq(self.fetch_valid & self.id_ready & self.req
                             & ~self.pc_set),
            self.if_valid.eq(self.if_ready & ~self.halt_if),
        ]

        with m.If(self.pc_set):
            m.d.comb += self.redirect.eq(1)
        with m.Elif(self.fetch_valid):
            m.d.comb += self.consume_ready.eq(self.req & self.if_valid
                                              & self.aligner_ready)

        m.d.comb += [
            self.busy.eq(self.fetch_busy),
            self.miss.eq(~self.fetch_valid & ~self.redirect),
        ]

        return m
