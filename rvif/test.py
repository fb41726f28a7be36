from amaranth.sim import Simulator

from rvif.bench import SyncHarness


def run_test(dut, testbench, sync=False):
    if sync and not isinstance(dut, SyncHarness):
        dut = SyncHarness(dut)

    sim = Simulator(dut)
    if sync:
        sim.add_clock(1e-6)
    sim.add_testbench(testbench)
    sim.run()


def is_rvc(instr):
    return (instr & 0b11) != 0b11


def layout_program(base, instrs):
    image = {}
    pcs = []

    pc = base
    for instr in instrs:
        pcs.append(pc)
        size = 2 if is_rvc(instr) else 4
        for i in range(size):
            image[pc + i] = (instr >> (8 * i)) & 0xff
        pc += size

    return image, pcs
