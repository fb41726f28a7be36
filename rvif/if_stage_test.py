import random

import pytest

from rvif.consts import PCSource, ExcPCSource
from rvif.if_stage import IFStage
from rvif.interface import OBI
from rvif.bench import SyncHarness, InstrMemory
from rvif.test import run_test, is_rvc, layout_program
from rvif import model

BASE = 0x80000000
TARGET = 0x80000200

# c.addi x1, 1; addi x2, x2, 16; c.li x10, 5; c.mv x11, x10;
# lui x5, 0x12345; add x3, x1, x2; c.nop; c.addi x1, 1; lui x5, 0x12345;
# c.li x10, 5
PROGRAM = [
    0x0085, 0x01010113, 0x4515, 0x85aa, 0x123452b7, 0x002081b3, 0x0001,
    0x0085, 0x123452b7, 0x4515
]

# c.nop; lui x5, 0x12345 (spans a word); c.mv x11, x10 (upper half);
# addi x2, x2, 16; c.addi x1, 1
TARGET_PROGRAM = [0x0001, 0x123452b7, 0x85aa, 0x01010113, 0x0085]

EXPANDED = {
    0x0001: 0x00000013,
    0x0085: 0x00108093,
    0x4515: 0x00500513,
    0x85aa: 0x00a005b3,
}

CONTROL_DEFAULTS = dict(
    req=1,
    pc_set=0,
    halt_if=0,
    fetch_failed=0,
)

OUTPUTS = [
    'redirect', 'redirect_addr', 'fetch_ready', 'csr_mtvec_init', 'if_busy',
    'perf_imiss', 'pc_if'
]


def expected_stream(base, instrs):
    _, pcs = layout_program(base, instrs)
    return [(pc, EXPANDED.get(instr, instr), is_rvc(instr))
            for pc, instr in zip(pcs, instrs)]


def get_slot(ctx, dut):
    return model.PipelineSlot.unpack(ctx.get(dut.slot.as_value()))


class DecodeStub:
    """Consumes the IF/ID slot whenever it is ready."""

    def __init__(self, dut, mem, stall_rate=0.0, seed=0):
        self.dut = dut
        self.mem = mem
        self.stall_rate = stall_rate
        self.rng = random.Random(seed)
        self.captured = []

    @property
    def stream(self):
        return [(slot.pc, slot.instr, slot.is_compressed)
                for slot in self.captured]

    async def cycle(self, ctx, id_ready=None, **inputs):
        if id_ready is None:
            id_ready = self.rng.random() >= self.stall_rate

        values = dict(CONTROL_DEFAULTS, **inputs)
        values['id_ready'] = int(id_ready)
        values.setdefault('clear_instr_valid',
                          int(id_ready or values['pc_set']))

        for name, value in values.items():
            ctx.set(getattr(self.dut, name), value)

        self.mem.respond(ctx)

        outputs = {name: ctx.get(getattr(self.dut, name)) for name in OUTPUTS}

        slot = get_slot(ctx, self.dut)
        if slot.valid and id_ready:
            self.captured.append(slot)

        await ctx.tick()

        return outputs

    async def boot(self, ctx, addr):
        return await self.cycle(ctx,
                                id_ready=True,
                                pc_set=1,
                                pc_mux=PCSource.BOOT,
                                boot_addr=addr)

    async def run_until(self, ctx, count, max_cycles=500):
        for _ in range(max_cycles):
            if len(self.captured) >= count:
                return
            await self.cycle(ctx)

        raise AssertionError(f'only {len(self.captured)} of {count} '
                             'instructions reached decode')

    async def fill_slot(self, ctx, max_cycles=100):
        for _ in range(max_cycles):
            await self.cycle(ctx, id_ready=True)
            if get_slot(ctx, self.dut).valid:
                return

        raise AssertionError('IF/ID slot never filled')


def make_if_stage(params=None, image=None, **mem_kwargs):
    ibus = OBI()
    dut = IFStage(ibus, params or dict())
    harness = SyncHarness(dut)
    mem = InstrMemory(ibus, image, **mem_kwargs)
    return dut, harness, mem


def program_image(*regions):
    image = {}
    for base, instrs in regions:
        image.update(layout_program(base, instrs)[0])
    return image


def test_if_stage_reset():
    dut, harness, mem = make_if_stage(
        image=program_image((BASE, PROGRAM)))
    decode = DecodeStub(dut, mem)

    async def testbench(ctx):
        assert get_slot(ctx, dut) == model.PipelineSlot()

        await decode.boot(ctx, BASE)
        await decode.run_until(ctx, 3)
        await decode.fill_slot(ctx)

        ctx.set(harness.rst, 1)
        await ctx.tick()
        ctx.set(harness.rst, 0)

        assert get_slot(ctx, dut) == model.PipelineSlot()

        # Restart from boot after reset
        decode.captured.clear()
        mem.reset()
        await decode.boot(ctx, BASE)
        await decode.run_until(ctx, len(PROGRAM))
        assert decode.stream[:len(PROGRAM)] == expected_stream(BASE, PROGRAM)

    run_test(harness, testbench, sync=True)


@pytest.mark.parametrize('depth', [1, 2, 4])
@pytest.mark.parametrize('latency, gnt_pattern, stall_rate', [
    (1, None, 0.0),
    (1, None, 0.3),
    (2, [1, 0, 1, 1, 0], 0.2),
    (3, [0, 1], 0.5),
])
def test_if_stage_program_order(depth, latency, gnt_pattern, stall_rate):
    dut, harness, mem = make_if_stage(dict(fetch_buffer_depth=depth),
                                      program_image((BASE, PROGRAM)),
                                      latency=latency,
                                      gnt_pattern=gnt_pattern)
    decode = DecodeStub(dut, mem, stall_rate=stall_rate, seed=depth)

    async def testbench(ctx):
        outputs = await decode.boot(ctx, BASE)
        assert outputs['redirect']
        assert outputs['redirect_addr'] == BASE
        assert outputs['csr_mtvec_init']
        assert not outputs['fetch_ready']

        await decode.run_until(ctx, len(PROGRAM))
        assert decode.stream[:len(PROGRAM)] == expected_stream(BASE, PROGRAM)

    run_test(harness, testbench, sync=True)


def test_if_stage_boot_addr_word_aligned():
    dut, harness, mem = make_if_stage(image=program_image((BASE, PROGRAM)))
    decode = DecodeStub(dut, mem)

    async def testbench(ctx):
        outputs = await decode.boot(ctx, BASE | 0x3)
        assert outputs['redirect_addr'] == BASE

        await decode.run_until(ctx, 2)
        assert decode.stream[:2] == expected_stream(BASE, PROGRAM)[:2]

    run_test(harness, testbench, sync=True)


@pytest.mark.parametrize('jump_target, pc_mux', [
    (TARGET, PCSource.JUMP),
    (TARGET | 0x1, PCSource.JUMP),
    (TARGET, PCSource.BRANCH),
    (TARGET, PCSource.MRET),
    (TARGET, PCSource.DRET),
])
def test_if_stage_redirect(jump_target, pc_mux):
    dut, harness, mem = make_if_stage(
        image=program_image((BASE, PROGRAM), (TARGET, TARGET_PROGRAM)),
        latency=2)
    decode = DecodeStub(dut, mem, stall_rate=0.2, seed=pc_mux)

    async def testbench(ctx):
        await decode.boot(ctx, BASE)
        await decode.run_until(ctx, 3)

        outputs = await decode.cycle(ctx,
                                     id_ready=True,
                                     pc_set=1,
                                     pc_mux=pc_mux,
                                     jump_target_id=jump_target,
                                     jump_target_ex=jump_target,
                                     mepc=jump_target,
                                     depc=jump_target)
        assert outputs['redirect']
        assert not outputs['fetch_ready']
        assert not outputs['csr_mtvec_init']
        assert outputs['redirect_addr'] == TARGET

        # Instructions after the jump are never seen
        n = len(decode.captured)
        assert decode.stream == expected_stream(BASE, PROGRAM)[:n]

        await decode.run_until(ctx, n + len(TARGET_PROGRAM))
        assert decode.stream[n:n + len(TARGET_PROGRAM)] == expected_stream(
            TARGET, TARGET_PROGRAM)

    run_test(harness, testbench, sync=True)


@pytest.mark.parametrize('index', range(len(TARGET_PROGRAM)))
def test_if_stage_jump_into_halfword(index):
    _, pcs = layout_program(TARGET, TARGET_PROGRAM)
    expected = expected_stream(TARGET, TARGET_PROGRAM)[index:]

    dut, harness, mem = make_if_stage(
        image=program_image((BASE, PROGRAM), (TARGET, TARGET_PROGRAM)))
    decode = DecodeStub(dut, mem, stall_rate=0.25, seed=index)

    async def testbench(ctx):
        await decode.boot(ctx, BASE)
        await decode.run_until(ctx, 2)

        outputs = await decode.cycle(ctx,
                                     id_ready=True,
                                     pc_set=1,
                                     pc_mux=PCSource.JUMP,
                                     jump_target_id=pcs[index])
        assert outputs['redirect_addr'] == pcs[index]
        n = len(decode.captured)

        await decode.run_until(ctx, n + len(expected))
        assert decode.stream[n:n + len(expected)] == expected

    run_test(harness, testbench, sync=True)


def test_if_stage_back_pressure():
    dut, harness, mem = make_if_stage(image=program_image((BASE, PROGRAM)))
    decode = DecodeStub(dut, mem)

    async def testbench(ctx):
        await decode.boot(ctx, BASE)
        await decode.run_until(ctx, 2)
        await decode.fill_slot(ctx)

        held = get_slot(ctx, dut)
        for _ in range(3):
            outputs = await decode.cycle(ctx, id_ready=False)
            assert not outputs['fetch_ready']
            assert get_slot(ctx, dut) == held

        await decode.run_until(ctx, len(PROGRAM))
        assert decode.stream[:len(PROGRAM)] == expected_stream(BASE, PROGRAM)

    run_test(harness, testbench, sync=True)


def test_if_stage_halt_if():
    dut, harness, mem = make_if_stage(image=program_image((BASE, PROGRAM)))
    decode = DecodeStub(dut, mem)

    async def testbench(ctx):
        await decode.boot(ctx, BASE)
        await decode.run_until(ctx, 2)

        n = len(decode.captured)
        for _ in range(6):
            outputs = await decode.cycle(ctx, id_ready=True, halt_if=1)
            assert not outputs['fetch_ready']

        # At most the instruction already in the slot drains
        assert len(decode.captured) <= n + 1
        assert not get_slot(ctx, dut).valid

        await decode.run_until(ctx, len(PROGRAM))
        assert decode.stream[:len(PROGRAM)] == expected_stream(BASE, PROGRAM)

    run_test(harness, testbench, sync=True)


def test_if_stage_fencei():
    program = [0x01010113, 0x123452b7, 0x002081b3, 0x01010113, 0x123452b7]
    dut, harness, mem = make_if_stage(image=program_image((BASE, program)))
    decode = DecodeStub(dut, mem)

    async def testbench(ctx):
        await decode.boot(ctx, BASE)
        await decode.run_until(ctx, 1)
        await decode.fill_slot(ctx)

        fence_pc = get_slot(ctx, dut).pc
        outputs = await decode.cycle(ctx,
                                     id_ready=True,
                                     pc_set=1,
                                     pc_mux=PCSource.FENCEI)
        assert outputs['redirect_addr'] == fence_pc + 4
        assert decode.captured[-1].pc == fence_pc

        n = len(decode.captured)
        remaining = [
            entry for entry in expected_stream(BASE, program)
            if entry[0] > fence_pc
        ]
        await decode.run_until(ctx, n + len(remaining))
        assert decode.stream[n:n + len(remaining)] == remaining

    run_test(harness, testbench, sync=True)


def test_if_stage_interrupt_vector():
    mtvec_base = 0x800002
    vector = 3
    handler = (mtvec_base << 8) + 4 * vector

    dut, harness, mem = make_if_stage(
        image=program_image((BASE, PROGRAM), (handler, TARGET_PROGRAM)))
    decode = DecodeStub(dut, mem, stall_rate=0.1)

    async def testbench(ctx):
        await decode.boot(ctx, BASE)
        await decode.run_until(ctx, 2)

        outputs = await decode.cycle(ctx,
                                     id_ready=True,
                                     pc_set=1,
                                     pc_mux=PCSource.EXCEPTION,
                                     exc_pc_mux=ExcPCSource.IRQ,
                                     mtvec_base=mtvec_base,
                                     exc_vec_idx=vector)
        assert outputs['redirect_addr'] == handler
        n = len(decode.captured)

        await decode.run_until(ctx, n + len(TARGET_PROGRAM))
        assert decode.stream[n:n + len(TARGET_PROGRAM)] == expected_stream(
            handler, TARGET_PROGRAM)

    run_test(harness, testbench, sync=True)


def test_if_stage_redirect_addr_matches_model():
    dut, harness, mem = make_if_stage()
    rng = random.Random(0x5e1)

    async def testbench(ctx):
        for _ in range(300):
            values = dict(
                pc_mux=rng.randrange(8),
                exc_pc_mux=rng.randrange(8),
                boot_addr=rng.getrandbits(32),
                jump_target_id=rng.getrandbits(32),
                jump_target_ex=rng.getrandbits(32),
                mepc=rng.getrandbits(32),
                depc=rng.getrandbits(32),
                mtvec_base=rng.getrandbits(24),
                exc_vec_idx=rng.getrandbits(5),
                dm_halt_addr=rng.getrandbits(32),
                dm_exception_addr=rng.getrandbits(32),
            )
            for name, value in values.items():
                ctx.set(getattr(dut, name), value)
            ctx.set(dut.pc_set, 1)

            exc_pc = model.select_exception_pc(values['exc_pc_mux'],
                                               values['mtvec_base'],
                                               values['exc_vec_idx'],
                                               values['dm_halt_addr'],
                                               values['dm_exception_addr'])
            candidate = model.select_pc(values['pc_mux'],
                                        values['jump_target_id'],
                                        values['jump_target_ex'], exc_pc,
                                        values['mepc'], values['depc'],
                                        get_slot(ctx, dut).pc,
                                        values['boot_addr'])

            assert ctx.get(dut.redirect)
            assert ctx.get(dut.redirect_addr) == model.redirect_target(
                candidate)
            assert ctx.get(dut.csr_mtvec_init) == (values['pc_mux'] ==
                                                   PCSource.BOOT)

    run_test(harness, testbench, sync=True)


def test_if_stage_status():
    dut, harness, mem = make_if_stage(image=program_image((BASE, PROGRAM)),
                                      latency=3)
    decode = DecodeStub(dut, mem)

    async def testbench(ctx):
        outputs = await decode.boot(ctx, BASE)
        assert not outputs['perf_imiss']

        # First request in flight, nothing to hand out yet
        outputs = await decode.cycle(ctx, id_ready=True)
        assert outputs['perf_imiss']
        assert outputs['if_busy']
        assert outputs['pc_if'] == BASE

        await decode.run_until(ctx, 1)
        outputs = await decode.cycle(ctx, id_ready=True, req=0)
        assert not outputs['csr_mtvec_init']

    run_test(harness, testbench, sync=True)


def test_if_stage_fetch_failed():
    dut, harness, mem = make_if_stage(image=program_image((BASE, PROGRAM)))
    decode = DecodeStub(dut, mem)

    async def testbench(ctx):
        await decode.boot(ctx, BASE)
        await decode.fill_slot(ctx)

        await decode.cycle(ctx,
                           id_ready=True,
                           req=0,
                           clear_instr_valid=1,
                           fetch_failed=1)
        slot = get_slot(ctx, dut)
        assert not slot.valid
        assert slot.fetch_failed

        # The next load drops the flag
        await decode.fill_slot(ctx)
        assert not get_slot(ctx, dut).fetch_failed

    run_test(harness, testbench, sync=True)


def test_if_stage_illegal_compressed():
    program = [0x0000, 0x0085, 0x8002]
    dut, harness, mem = make_if_stage(image=program_image((BASE, program)))
    decode = DecodeStub(dut, mem)

    async def testbench(ctx):
        await decode.boot(ctx, BASE)
        await decode.run_until(ctx, 3)

        flags = [(slot.pc, slot.is_compressed, slot.illegal_compressed)
                 for slot in decode.captured[:3]]
        assert flags == [
            (BASE, True, True),
            (BASE + 2, True, False),
            (BASE + 4, True, True),
        ]

    run_test(harness, testbench, sync=True)


def test_if_stage_jump_back():
    program = [0x01010113, 0x123452b7, 0x002081b3, 0x01010113, 0x123452b7]
    dut, harness, mem = make_if_stage(image=program_image((BASE, program)))
    decode = DecodeStub(dut, mem)

    async def testbench(ctx):
        await decode.boot(ctx, BASE)
        await decode.run_until(ctx, 3)

        outputs = await decode.cycle(ctx,
                                     id_ready=True,
                                     pc_set=1,
                                     pc_mux=PCSource.JUMP,
                                     jump_target_id=0x80000004)
        assert outputs['redirect']
        assert not outputs['fetch_ready']
        assert outputs['redirect_addr'] == 0x80000004

        n = len(decode.captured)
        await decode.run_until(ctx, n + 4)
        assert decode.stream[n:n + 4] == expected_stream(BASE, program)[1:5]

    run_test(harness, testbench, sync=True)
