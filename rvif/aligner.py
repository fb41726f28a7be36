from amaranth import *

from rvif.consts import AlignerState


class Aligner(Elaboratable):

    def __init__(self):
        self.fetch_valid = Signal()
        self.fetch_rdata = Signal(32)
        self.if_valid = Signal()

        self.redirect = Signal()
        self.redirect_addr = Signal(32)

        self.ready = Signal()
        self.instr_aligned = Signal(32)
        self.instr_valid = Signal()
        self.pc = Signal(32)

    def elaborate(self, platform):
        m = Module()

        state = Signal(AlignerState)
        r_instr_h = Signal(16)

        rdata = self.fetch_rdata
        update = self.fetch_valid & self.if_valid

        def is_rvi(half):
            return half[0:2] == 0b11

        with m.Switch(state):
            with m.Case(AlignerState.ALIGNED32):
                m.d.comb += [
                    self.instr_aligned.eq(rdata),
                    self.instr_valid.eq(self.fetch_valid),
                    self.ready.eq(1),
                ]

                with m.If(update):
                    with m.If(is_rvi(rdata[:16])):
                        m.d.sync += self.pc.eq(self.pc + 4)
                    with m.Else():
                        m.d.sync += [
                            r_instr_h.eq(rdata[16:]),
                            self.pc.eq(self.pc + 2),
                            state.eq(AlignerState.MISALIGNED32),
                        ]

            with m.Case(AlignerState.MISALIGNED32):
                m.d.comb += self.instr_aligned.eq(Cat(r_instr_h, rdata[:16]))

                with m.If(is_rvi(r_instr_h)):
                    m.d.comb += [
                        self.instr_valid.eq(self.fetch_valid),
                        self.ready.eq(1),
                    ]

                    with m.If(update):
                        m.d.sync += [
                            r_instr_h.eq(rdata[16:]),
                            self.pc.eq(self.pc + 4),
                        ]

                with m.Else():
                    # Buffered compressed instruction, the fetched word stays
                    m.d.comb += [
                        self.instr_valid.eq(1),
                        self.ready.eq(0),
                    ]

                    with m.If(update):
                        m.d.sync += [
                            self.pc.eq(self.pc + 2),
                            state.eq(AlignerState.ALIGNED32),
                        ]

            with m.Case(AlignerState.BRANCH_MISALIGNED):
                m.d.comb += [
                    self.instr_aligned.eq(Cat(rdata[16:], rdata[:16])),
                    self.ready.eq(1),
                ]

                with m.If(is_rvi(rdata[16:])):
                    # Upper half starts a 32-bit instruction, wait for the
                    # next word
                    with m.If(update):
                        m.d.sync += [
                            r_instr_h.eq(rdata[16:]),
                            state.eq(AlignerState.MISALIGNED32),
                        ]

                with m.Else():
                    m.d.comb += self.instr_valid.eq(self.fetch_valid)

                    with m.If(update):
                        m.d.sync += [
                            self.pc.eq(self.pc + 2),
                            state.eq(AlignerState.ALIGNED32),
                        ]

        with m.If(self.redirect):
            m.d.sync += [
                self.pc.eq(self.redirect_addr),
                state.eq(
                    Mux(self.redirect_addr[1], AlignerState.BRANCH_MISALIGNED,
                        AlignerState.ALIGNED32)),
            ]

        return m
